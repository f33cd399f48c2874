#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

# design:
# The accept loop runs in its own thread and polls the non-blocking
# listener with a short timeout so that stop() is noticed. Every accepted
# connection gets a reader thread (FastCGIConnection.run) which in turn
# starts one handler thread per request.

import errno
import selectors
import threading
import time

from fcgiwrap.fastcgi.connection import FastCGIConnection


class FastCGIServer(object):

    POLL_TIMEOUT = 0.5

    # resource shortages are worth a retry, anything else ends serving
    TRANSIENT_ERRORS = (errno.EMFILE, errno.ENFILE, errno.ENOBUFS,
                        errno.ENOMEM)

    def __init__(self, listener, handler, cfg, log, on_error=None):
        self.listener = listener
        self.handler = handler
        self.cfg = cfg
        self.log = log
        self.on_error = on_error

        self.alive = False
        self.conn_seq = 0
        self.poller = None
        self._thread = None

    def start(self):
        self.alive = True
        self.poller = selectors.DefaultSelector()
        self.poller.register(self.listener, selectors.EVENT_READ)
        self._thread = threading.Thread(target=self.run, name="fcgi-accept")
        self._thread.daemon = True
        self._thread.start()

    def stop(self, timeout=None):
        self.alive = False
        if self._thread is not None and \
                self._thread is not threading.current_thread():
            self._thread.join(timeout or self.POLL_TIMEOUT * 4)

    def run(self):
        try:
            while self.alive:
                events = self.poller.select(self.POLL_TIMEOUT)
                for _key, _mask in events:
                    if not self.alive:
                        break
                    self.accept()
        except Exception as e:
            if self.alive:
                self.alive = False
                self.log.error("Error accepting connections: %s", e)
                if self.on_error is not None:
                    self.on_error(e)
        finally:
            self.poller.close()

    def accept(self):
        try:
            sock, client = self.listener.accept()
        except OSError as e:
            if e.errno in (errno.EAGAIN, errno.ECONNABORTED,
                           errno.EWOULDBLOCK, errno.EINTR):
                return
            if e.errno in self.TRANSIENT_ERRORS:
                self.log.error("Cannot accept connection: %s", e)
                time.sleep(0.1)
                return
            raise

        self.conn_seq += 1
        sock.setblocking(True)  # Explicitly set behavior since it differs per OS
        sock.set_inheritable(False)
        conn = FastCGIConnection(sock, client, self.handler, self.log,
                                 max_reqs=self.cfg.worker_limit)
        t = threading.Thread(target=conn.run,
                             name="fcgi-conn-%d" % self.conn_seq)
        t.daemon = True
        t.start()
