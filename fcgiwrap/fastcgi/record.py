#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import io
import os

from fcgiwrap.fastcgi.constants import (
    FCGI_VERSION_1,
    FCGI_HEADER_LEN,
    FCGI_MAX_CONTENT_LEN,
    FCGI_NULL_REQUEST_ID,
    FCGI_RESPONDER,
    FCGI_REQUEST_COMPLETE,
    FCGI_RECORD_TYPES,
    MAX_FCGI_PARAMS,
)
from fcgiwrap.fastcgi.errors import (
    ConnectionClosed,
    InvalidFastCGIRecord,
    UnsupportedRole,
)


class Record(object):
    """A single FastCGI record.

    The FastCGI protocol uses 8-byte record headers:
    - Byte 0: version (1)
    - Byte 1: type (record type)
    - Bytes 2-3: requestId (16-bit big-endian)
    - Bytes 4-5: contentLength (16-bit big-endian)
    - Byte 6: paddingLength
    - Byte 7: reserved
    """

    def __init__(self, record_type, request_id=FCGI_NULL_REQUEST_ID,
                 content=b""):
        if len(content) > FCGI_MAX_CONTENT_LEN:
            raise ValueError("record content too large: %d" % len(content))
        self.type = record_type
        self.request_id = request_id
        self.content = content

    def __repr__(self):
        return "<Record %s id=%d len=%d>" % (
            FCGI_RECORD_TYPES.get(self.type, self.type),
            self.request_id, len(self.content))

    @classmethod
    def read(cls, rfile):
        """Read the next record from a buffered binary file.

        Raises ConnectionClosed when the stream ends cleanly between
        records and InvalidFastCGIRecord when it ends inside one.
        """
        header = rfile.read(FCGI_HEADER_LEN)
        if not header:
            raise ConnectionClosed()
        if len(header) < FCGI_HEADER_LEN:
            raise InvalidFastCGIRecord("incomplete header")

        version = header[0]
        record_type = header[1]
        request_id = int.from_bytes(header[2:4], 'big')
        content_length = int.from_bytes(header[4:6], 'big')
        padding_length = header[6]
        # header[7] is reserved

        if version != FCGI_VERSION_1:
            raise InvalidFastCGIRecord("unsupported version: %d" % version)

        content = b""
        if content_length > 0:
            content = rfile.read(content_length)
            if len(content) < content_length:
                raise InvalidFastCGIRecord("incomplete content")

        # Discard padding
        if padding_length > 0:
            padding = rfile.read(padding_length)
            if len(padding) < padding_length:
                raise InvalidFastCGIRecord("incomplete padding")

        return cls(record_type, request_id, content)

    def encode(self):
        content_length = len(self.content)
        # Pad to 8-byte boundary for efficiency (optional but recommended)
        padding_length = (8 - (content_length % 8)) % 8

        header = bytes([
            FCGI_VERSION_1,
            self.type,
            (self.request_id >> 8) & 0xFF,
            self.request_id & 0xFF,
            (content_length >> 8) & 0xFF,
            content_length & 0xFF,
            padding_length,
            0,  # reserved
        ])
        return header + self.content + b'\x00' * padding_length


def stream_records(record_type, request_id, data):
    """Split stream data into records of at most 65535 bytes."""
    offset = 0
    while offset < len(data):
        chunk = data[offset:offset + FCGI_MAX_CONTENT_LEN]
        yield Record(record_type, request_id, chunk)
        offset += len(chunk)


def decode_length(data, pos):
    """Decode a FastCGI variable-length integer.

    - If high bit is 0: 1-byte length (0-127)
    - If high bit is 1: 4-byte big-endian with high bit cleared

    Returns:
        tuple: (length_value, new_position)
    """
    if pos >= len(data):
        raise InvalidFastCGIRecord("truncated length field")

    byte0 = data[pos]
    if byte0 >> 7 == 0:
        return byte0, pos + 1

    if pos + 4 > len(data):
        raise InvalidFastCGIRecord("truncated 4-byte length field")
    length = int.from_bytes(data[pos:pos + 4], 'big') & 0x7FFFFFFF
    return length, pos + 4


def encode_length(length):
    if length < 128:
        return bytes([length])
    return (length | 0x80000000).to_bytes(4, 'big')


def decode_params(data):
    """Parse accumulated PARAMS content into a dict.

    Names and values are decoded with os.fsdecode so that paths and
    environment entries reach the OS as the exact bytes the web server
    sent. A repeated name keeps the last value.
    """
    params = {}
    pos = 0
    param_count = 0

    while pos < len(data):
        if param_count >= MAX_FCGI_PARAMS:
            raise InvalidFastCGIRecord("too many parameters")

        name_length, pos = decode_length(data, pos)
        value_length, pos = decode_length(data, pos)

        if pos + name_length > len(data):
            raise InvalidFastCGIRecord("truncated parameter name")
        name = os.fsdecode(data[pos:pos + name_length])
        pos += name_length

        if pos + value_length > len(data):
            raise InvalidFastCGIRecord("truncated parameter value")
        value = os.fsdecode(data[pos:pos + value_length])
        pos += value_length

        params[name] = value
        param_count += 1

    return params


def encode_params(pairs):
    """Encode (name, value) pairs as PARAMS content."""
    buf = io.BytesIO()
    for name, value in pairs:
        if isinstance(name, str):
            name = os.fsencode(name)
        if isinstance(value, str):
            value = os.fsencode(value)
        buf.write(encode_length(len(name)))
        buf.write(encode_length(len(value)))
        buf.write(name)
        buf.write(value)
    return buf.getvalue()


def parse_begin_request(content):
    """Parse a BEGIN_REQUEST body: role (2 BE), flags (1), reserved (5).

    Returns:
        tuple: (role, flags)
    """
    if len(content) < 8:
        raise InvalidFastCGIRecord("BEGIN_REQUEST content too short")

    role = int.from_bytes(content[0:2], 'big')
    flags = content[2]

    # Only RESPONDER role is supported
    if role != FCGI_RESPONDER:
        raise UnsupportedRole(role)
    return role, flags


def end_request_body(app_status=0, protocol_status=FCGI_REQUEST_COMPLETE):
    """Build an END_REQUEST body.

    - appStatus (4 bytes BE): application exit status
    - protocolStatus (1 byte): FCGI_REQUEST_COMPLETE, etc.
    - reserved (3 bytes): 0
    """
    return (app_status & 0xFFFFFFFF).to_bytes(4, 'big') + bytes([
        protocol_status,
        0, 0, 0,  # reserved
    ])
