#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

"""FastCGI client side helpers for the tests."""

import socket
import threading

from fcgiwrap.fastcgi.connection import FastCGIConnection
from fcgiwrap.fastcgi.constants import (
    FCGI_BEGIN_REQUEST,
    FCGI_END_REQUEST,
    FCGI_PARAMS,
    FCGI_RESPONDER,
    FCGI_STDERR,
    FCGI_STDIN,
    FCGI_STDOUT,
)
from fcgiwrap.fastcgi.record import Record, encode_params


def begin_request(request_id, role=FCGI_RESPONDER, flags=0):
    content = role.to_bytes(2, 'big') + bytes([flags]) + b'\x00' * 5
    return Record(FCGI_BEGIN_REQUEST, request_id, content).encode()


def params_records(params, request_id):
    content = encode_params(params.items())
    return (Record(FCGI_PARAMS, request_id, content).encode() +
            Record(FCGI_PARAMS, request_id).encode())


def stdin_records(body, request_id):
    data = b''
    if body:
        data += Record(FCGI_STDIN, request_id, body).encode()
    return data + Record(FCGI_STDIN, request_id).encode()


def request_records(params, body=b'', request_id=1, flags=0):
    return (begin_request(request_id, flags=flags) +
            params_records(params, request_id) +
            stdin_records(body, request_id))


class Reply(object):
    """Everything the server sent back for one request."""

    def __init__(self):
        self.stdout = b''
        self.stderr = b''
        self.app_status = None
        self.protocol_status = None
        self.records = []

    @property
    def headers(self):
        head = self.stdout.split(b'\r\n\r\n', 1)[0]
        return head.decode('latin-1').split('\r\n')

    @property
    def body(self):
        return self.stdout.split(b'\r\n\r\n', 1)[1]


def read_reply(rfile, request_id=1):
    reply = Reply()
    while True:
        record = Record.read(rfile)
        reply.records.append(record)
        if record.request_id != request_id:
            continue
        if record.type == FCGI_STDOUT:
            reply.stdout += record.content
        elif record.type == FCGI_STDERR:
            reply.stderr += record.content
        elif record.type == FCGI_END_REQUEST:
            reply.app_status = int.from_bytes(record.content[:4], 'big')
            reply.protocol_status = record.content[4]
            return reply


class Peer(object):
    """A FastCGIConnection served on one end of a socket pair."""

    def __init__(self, handler, log, max_reqs=None, timeout=10):
        server_sock, self.client = socket.socketpair()
        self.client.settimeout(timeout)
        self.rfile = self.client.makefile('rb')
        self.conn = FastCGIConnection(server_sock, None, handler, log,
                                      max_reqs=max_reqs)
        self.thread = threading.Thread(target=self.conn.run)
        self.thread.daemon = True
        self.thread.start()

    def send(self, data):
        self.client.sendall(data)

    def request(self, params, body=b'', request_id=1, flags=0):
        self.send(request_records(params, body, request_id, flags))
        return read_reply(self.rfile, request_id)

    def read_record(self):
        return Record.read(self.rfile)

    def close(self):
        self.rfile.close()
        self.client.close()
        self.thread.join(5)
