#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import io
import socket
import threading

from fcgiwrap.fastcgi.constants import (
    FCGI_BEGIN_REQUEST,
    FCGI_ABORT_REQUEST,
    FCGI_PARAMS,
    FCGI_STDIN,
    FCGI_DATA,
    FCGI_GET_VALUES,
    FCGI_GET_VALUES_RESULT,
    FCGI_UNKNOWN_TYPE,
    FCGI_END_REQUEST,
    FCGI_KEEP_CONN,
    FCGI_NULL_REQUEST_ID,
    FCGI_UNKNOWN_ROLE,
    FCGI_MAX_CONNS,
    FCGI_MAX_REQS,
    FCGI_MPXS_CONNS,
)
from fcgiwrap.fastcgi.errors import (
    ConnectionClosed,
    FastCGIParseException,
    UnsupportedRole,
)
from fcgiwrap.fastcgi.record import (
    Record,
    decode_params,
    encode_params,
    end_request_body,
    parse_begin_request,
)
from fcgiwrap.fastcgi.response import FastCGIResponse


class RequestAborted(IOError):
    """The request body can no longer be read."""

    def __init__(self, reason):
        self.reason = reason

    def __str__(self):
        return "request aborted: %s" % self.reason


class RequestContext(object):
    """Cancellation state shared by everything serving one request.

    Callbacks registered with add_callback run once, on the thread that
    cancels, outside of the internal lock. A callback added after
    cancellation runs immediately.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._callbacks = []
        self.reason = None

    @property
    def cancelled(self):
        return self._event.is_set()

    def wait(self, timeout=None):
        return self._event.wait(timeout)

    def cancel(self, reason="cancelled"):
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            callback()
        return True

    def add_callback(self, callback):
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback):
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass


class BodyStream(object):
    """Request body fed by the connection reader from STDIN records.

    The buffer is bounded: feeding blocks the reader while a full buffer
    waits to be consumed, so a large upload is never held in memory.
    """

    max_buffered = 256 * 1024

    def __init__(self, max_buffered=None):
        if max_buffered is not None:
            self.max_buffered = max_buffered
        self._cond = threading.Condition(threading.Lock())
        self._buf = bytearray()
        self._eof = False
        self._error = None
        self._discarded = False

    def feed(self, data):
        with self._cond:
            while (len(self._buf) >= self.max_buffered and
                   not self._discarded and self._error is None):
                self._cond.wait()
            if self._discarded or self._eof:
                return
            self._buf.extend(data)
            self._cond.notify_all()

    def feed_eof(self):
        with self._cond:
            self._eof = True
            self._cond.notify_all()

    def fail(self, exc):
        with self._cond:
            if self._error is None and not self._eof:
                self._error = exc
            self._cond.notify_all()

    def discard(self):
        """Drop buffered data and ignore whatever is still fed."""
        with self._cond:
            self._discarded = True
            self._buf.clear()
            self._cond.notify_all()

    def read(self, size=-1):
        with self._cond:
            while (not self._buf and not self._eof and
                   self._error is None and not self._discarded):
                self._cond.wait()

            if self._buf:
                if size is None or size < 0:
                    size = len(self._buf)
                data = bytes(self._buf[:size])
                del self._buf[:size]
                self._cond.notify_all()
                return data

            if self._error is not None:
                raise self._error
            return b""


class FastCGIRequest(object):

    def __init__(self, conn, request_id, flags):
        self.request_id = request_id
        self.keep_conn = bool(flags & FCGI_KEEP_CONN)
        self.params = {}
        self.body = BodyStream()
        self.context = RequestContext()
        self.response = FastCGIResponse(conn, request_id)
        self.started = False
        self._params = io.BytesIO()

    def __repr__(self):
        return "<FastCGIRequest id=%d %s>" % (
            self.request_id, self.params.get("SCRIPT_NAME", ""))

    def add_params(self, content):
        self._params.write(content)

    def complete_params(self):
        self.params = decode_params(self._params.getvalue())
        self._params = None


class FastCGIConnection(object):
    """One web server connection.

    The reader runs on the thread calling ``run`` and demultiplexes records
    by request id. Each request gets its own handler thread as soon as its
    parameters are complete, while the body keeps streaming in.
    """

    def __init__(self, sock, client, handler, log, max_reqs=None):
        self.sock = sock
        self.client = client
        self.handler = handler
        self.log = log
        self.max_reqs = max_reqs

        self.rfile = sock.makefile("rb")
        self.requests = {}
        self.reading = True
        self.closed = False
        self._lock = threading.Lock()
        self._wlock = threading.Lock()

    def __str__(self):
        return "<FastCGIConnection %s>" % (self.client or "-",)

    def write_records(self, records):
        data = b"".join(record.encode() for record in records)
        with self._wlock:
            self.sock.sendall(data)

    def run(self):
        reason = "connection closed"
        try:
            while not self.closed:
                record = Record.read(self.rfile)
                self.handle_record(record)
        except ConnectionClosed:
            self.log.debug("Connection closed by %s", self.client or "peer")
        except FastCGIParseException as e:
            reason = str(e)
            self.log.warning("Invalid FastCGI record from %s: %s",
                             self.client or "peer", e)
        except (OSError, ValueError) as e:
            # ValueError: the file was closed under us by close()
            if not self.closed:
                reason = str(e)
                self.log.debug("Connection error: %s", e)
        finally:
            self.finish_reading(reason)

    def finish_reading(self, reason):
        with self._lock:
            self.reading = False
            # requests without a handler thread die with the connection
            for request_id, req in list(self.requests.items()):
                if not req.started:
                    del self.requests[request_id]
            pending = list(self.requests.values())

        for req in pending:
            req.body.fail(RequestAborted(reason))
            req.context.cancel(reason)

        try:
            self.rfile.close()
        except OSError:
            pass

        if not pending:
            self.close()

    def handle_record(self, record):
        if record.request_id == FCGI_NULL_REQUEST_ID:
            self.handle_management(record)
            return

        if record.type == FCGI_BEGIN_REQUEST:
            self.begin_request(record)
            return

        with self._lock:
            req = self.requests.get(record.request_id)
        if req is None:
            # records of finished or unknown requests are ignored
            return

        if record.type == FCGI_PARAMS:
            if req.started:
                return
            if record.content:
                req.add_params(record.content)
            else:
                req.complete_params()
                self.start_request(req)
        elif record.type == FCGI_STDIN:
            if record.content:
                req.body.feed(record.content)
            else:
                req.body.feed_eof()
        elif record.type == FCGI_ABORT_REQUEST:
            self.log.debug("Request %d aborted by the web server",
                           req.request_id)
            req.body.fail(RequestAborted("aborted by the web server"))
            req.context.cancel("aborted by the web server")
        elif record.type == FCGI_DATA:
            pass

    def handle_management(self, record):
        if record.type == FCGI_GET_VALUES:
            wanted = decode_params(record.content)
            values = {FCGI_MPXS_CONNS: "1"}
            if self.max_reqs:
                values[FCGI_MAX_CONNS] = str(self.max_reqs)
                values[FCGI_MAX_REQS] = str(self.max_reqs)
            reply = [(k, values[k]) for k in wanted if k in values]
            self.write_records([Record(FCGI_GET_VALUES_RESULT,
                                       FCGI_NULL_REQUEST_ID,
                                       encode_params(reply))])
        else:
            self.write_records([Record(FCGI_UNKNOWN_TYPE,
                                       FCGI_NULL_REQUEST_ID,
                                       bytes([record.type]) + b"\x00" * 7)])

    def begin_request(self, record):
        try:
            _role, flags = parse_begin_request(record.content)
        except UnsupportedRole as e:
            self.log.debug("Rejecting request %d: %s", record.request_id, e)
            self.write_records([Record(
                FCGI_END_REQUEST, record.request_id,
                end_request_body(0, FCGI_UNKNOWN_ROLE))])
            return

        with self._lock:
            if record.request_id in self.requests:
                self.log.debug("Duplicate request id %d ignored",
                               record.request_id)
                return
            self.requests[record.request_id] = FastCGIRequest(
                self, record.request_id, flags)

    def start_request(self, req):
        req.started = True
        t = threading.Thread(target=self.serve_request, args=(req,),
                             name="fcgi-request-%d" % req.request_id)
        t.daemon = True
        t.start()

    def serve_request(self, req):
        app_status = 0
        try:
            app_status = self.handler(req) or 0
        except Exception:
            self.log.exception("Error handling request %d", req.request_id)
            try:
                req.response.error(500, "Internal Server Error")
            except OSError:
                pass
        finally:
            req.body.discard()
            self.end_request(req, app_status)

    def end_request(self, req, app_status):
        with self._lock:
            self.requests.pop(req.request_id, None)
            idle = not self.requests
            reading = self.reading

        try:
            req.response.close(app_status)
        except OSError as e:
            self.log.debug("Cannot complete request %d: %s",
                           req.request_id, e)

        if idle and (not req.keep_conn or not reading):
            self.close()

    def close(self):
        with self._lock:
            if self.closed:
                return
            self.closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
