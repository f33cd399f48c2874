#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

from http import HTTPStatus
import re

from fcgiwrap import util
from fcgiwrap.fastcgi.constants import (
    FCGI_STDOUT,
    FCGI_STDERR,
    FCGI_END_REQUEST,
    FCGI_REQUEST_COMPLETE,
)
from fcgiwrap.fastcgi.record import Record, end_request_body, stream_records

# RFC9110 5.6.2 token
TOKEN_RE = re.compile(r"[%s0-9a-zA-Z]+" % (re.escape("!#$%&'*+-.^_`|~")))

# RFC9110 5.5: field-vchar = VCHAR / obs-text
# RFC4234 B.1: VCHAR = 0x21-x07E = printable ASCII
HEADER_VALUE_RE = re.compile(r'[ \t\x21-\x7e\x80-\xff]*')


class InvalidResponseHeader(ValueError):

    def __init__(self, name, value):
        self.name = name
        self.value = value

    def __str__(self):
        return "invalid response header %r: %r" % (self.name, self.value)


class FastCGIResponse(object):
    """FastCGI protocol response handler.

    Headers are sent as CGI-style lines ahead of the body, all output is
    wrapped in STDOUT records (max 64KB each) and closing the response
    sends the empty stream records followed by END_REQUEST.
    """

    def __init__(self, conn, request_id):
        self.conn = conn
        self.request_id = request_id
        self.headers = []
        self.headers_sent = False
        self.stderr_sent = False
        self.closed = False
        self.sent = 0

    def add_header(self, name, value):
        if not TOKEN_RE.fullmatch(name) or not HEADER_VALUE_RE.fullmatch(value):
            raise InvalidResponseHeader(name, value)
        self.headers.append((name, value))

    def get_all(self, name):
        lname = name.lower()
        return [v for k, v in self.headers if k.lower() == lname]

    def default_headers(self):
        # a script answering without Status means 200, as in CGI
        if self.get_all("Status"):
            return []
        return ["Status: 200 OK\r\n"]

    def send_headers(self):
        if self.headers_sent:
            return

        tosend = self.default_headers()
        tosend.extend(["%s: %s\r\n" % (k, v) for k, v in self.headers])

        header_str = "%s\r\n" % "".join(tosend)
        self.conn.write_records(stream_records(
            FCGI_STDOUT, self.request_id, util.to_bytestring(header_str)))
        self.headers_sent = True

    def write(self, data):
        self.send_headers()
        if not isinstance(data, bytes):
            raise TypeError('%r is not a byte' % data)
        if not data:
            return
        self.conn.write_records(
            stream_records(FCGI_STDOUT, self.request_id, data))
        self.sent += len(data)

    def write_stderr(self, data):
        if not data:
            return
        self.conn.write_records(
            stream_records(FCGI_STDERR, self.request_id, data))
        self.stderr_sent = True

    def error(self, code, message):
        """Answer with a plain text error, unless the headers already left."""
        if self.headers_sent:
            return False
        try:
            reason = HTTPStatus(code).phrase
        except ValueError:
            reason = ""
        self.headers = [
            ("Status", ("%d %s" % (code, reason)).strip()),
            ("Content-Type", "text/plain; charset=utf-8"),
            ("X-Content-Type-Options", "nosniff"),
        ]
        self.write(("%s\n" % message).encode("utf-8", "surrogateescape"))
        return True

    def close(self, app_status=0, protocol_status=FCGI_REQUEST_COMPLETE):
        """Close the response.

        Sends the empty STDOUT record (end of output), an empty STDERR
        record if anything went to stderr, and END_REQUEST.
        """
        if self.closed:
            return
        self.closed = True

        if not self.headers_sent:
            self.send_headers()

        records = [Record(FCGI_STDOUT, self.request_id)]
        if self.stderr_sent:
            records.append(Record(FCGI_STDERR, self.request_id))
        records.append(Record(FCGI_END_REQUEST, self.request_id,
                              end_request_body(app_status, protocol_status)))
        self.conn.write_records(records)
