# -*- coding: utf-8 -
#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import errno
import os
import select
import signal
import time

from fcgiwrap import sock, util
from fcgiwrap.cgi import CGIResponder
from fcgiwrap.cgi.environ import inherited_environ
from fcgiwrap.dispatcher import Dispatcher, make_state
from fcgiwrap.errors import HaltServer
from fcgiwrap.fastcgi import FastCGIServer


class Arbiter(object):
    """
    Arbiter owns the listener and the lifetime of the server. It serves
    until a termination signal, a fatal transport error or the idle
    timeout, then drains in-flight requests and cleans up.
    """

    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"

    # seconds between checks of the main loop
    TICK = 1.0

    SIGNALS = [getattr(signal, "SIG%s" % x)
               for x in "INT TERM QUIT USR1".split()]
    SIG_NAMES = dict(
        (getattr(signal, name), name[3:].lower()) for name in dir(signal)
        if name[:3] == "SIG" and name[3] != "_"
    )

    def __init__(self, cfg, log, clock=time.monotonic):
        self.cfg = cfg
        self.log = log
        self.clock = clock

        self.state = None
        self.listener = None
        self.server = None
        self.fatal_error = None
        self.admission = make_state(cfg, clock)

        self.PIPE = []
        self.SIG_QUEUE = []
        self._saved_handlers = {}

    @property
    def active_jobs(self):
        return self.admission.jobs.count

    def start(self):
        """\
        Initialize the arbiter. Start listening and serving.
        """
        self.pid = os.getpid()
        self.listener = sock.create_socket(self.cfg, self.log)
        self.init_signals()

        responder = CGIResponder(self.cfg, self.log, inherited_environ())
        dispatcher = Dispatcher(self.admission, responder, self.log)
        self.server = FastCGIServer(self.listener, dispatcher, self.cfg,
                                    self.log, on_error=self.on_server_error)
        self.server.start()
        self.state = self.RUNNING

    def init_signals(self):
        """\
        Initialize signal handling. Signals are queued and the main loop
        is woken up through a pipe.
        """
        if self.PIPE:
            for p in self.PIPE:
                os.close(p)
        self.PIPE = pair = os.pipe()
        for p in pair:
            util.set_non_blocking(p)
            util.close_on_exec(p)

        for s in self.SIGNALS:
            self._saved_handlers[s] = signal.signal(s, self.signal)

    def restore_signals(self):
        for s, handler in self._saved_handlers.items():
            if handler is None:
                handler = signal.SIG_DFL
            signal.signal(s, handler)
        self._saved_handlers = {}

        for p in self.PIPE:
            os.close(p)
        self.PIPE = []

    def signal(self, sig, frame):
        if len(self.SIG_QUEUE) < 5:
            self.SIG_QUEUE.append(sig)
            self.wakeup()

    def on_server_error(self, exc):
        self.fatal_error = exc
        self.wakeup()

    def run(self):
        "Main loop."
        self.start()

        try:
            while self.state == self.RUNNING:
                sig = self.SIG_QUEUE.pop(0) if self.SIG_QUEUE else None
                if sig is None:
                    self.sleep()
                    self.check_server()
                    self.check_idle()
                    continue

                signame = self.SIG_NAMES.get(sig)
                handler = getattr(self, "handle_%s" % signame, None)
                if not handler:
                    self.log.error("Unhandled signal: %s", signame)
                    continue
                self.log.info("Handling signal: %s", signame)
                handler()
        except KeyboardInterrupt:
            self.drain("interrupted")
        except Exception:
            self.log.exception("Unhandled exception in main loop")
            self.stop()
            raise HaltServer("unhandled exception in main loop", 1)

        self.stop()

    def handle_int(self):
        "SIGINT handling"
        self.log.info("shutdown signal received, waiting for active handlers")
        self.drain("signal")

    handle_term = handle_int

    def handle_quit(self):
        "SIGQUIT handling"
        self.handle_int()

    def handle_usr1(self):
        """\
        SIGUSR1 handling.
        Reopen the log files.
        """
        self.log.reopen_files()

    def check_server(self):
        if self.fatal_error is None:
            return
        self.log.error("FastCGI serve error: %s", self.fatal_error)
        self.drain("transport error")

    def check_idle(self):
        """\
        Leave the running state once the idle period passed without any
        active job. With jobs still running the period starts over.
        """
        if self.state != self.RUNNING or not self.admission.timer.expired():
            return

        if self.active_jobs == 0:
            self.log.info("timeout reached and no active jobs")
            self.drain("idle timeout")
        else:
            self.log.debug("timeout fired but there are still active jobs, "
                           "resetting timer")
            self.admission.timer.reset()

    def drain(self, reason):
        if self.state != self.RUNNING:
            return
        self.log.debug("Draining (%s)", reason)
        self.state = self.DRAINING

    def wakeup(self):
        """\
        Wake up the arbiter by writing to the PIPE
        """
        try:
            os.write(self.PIPE[1], b'.')
        except OSError as e:
            if e.errno not in [errno.EAGAIN, errno.EINTR]:
                raise

    def sleep(self):
        """\
        Sleep until PIPE is readable, the idle deadline passes or we
        timeout. A readable PIPE means a signal occurred.
        """
        timeout = self.admission.timer.remaining()
        if timeout is None or timeout > self.TICK:
            timeout = self.TICK

        try:
            ready = select.select([self.PIPE[0]], [], [], timeout)
            if not ready[0]:
                return
            while os.read(self.PIPE[0], 1):
                pass
        except OSError as e:
            if e.errno not in [errno.EAGAIN, errno.EINTR]:
                raise

    def stop(self):
        """\
        Stop accepting connections, wait for active requests to finish
        and clean up. Running scripts are never killed here.
        """
        if self.state == self.TERMINATED:
            return
        self.state = self.DRAINING

        if self.server is not None:
            self.server.stop()
        if self.listener is not None:
            # closing the inherited stdin socket only closes our duplicate
            sock.close_socket(self.listener, unlink=False)

        graceful_timeout = self.cfg.graceful_timeout
        if self.admission.jobs.wait_idle(graceful_timeout):
            self.log.info("all handlers completed")
        else:
            self.log.warning("timeout waiting for handlers to finish")

        self.terminate()

    def terminate(self):
        if self.listener is not None and \
                isinstance(self.listener, sock.UnixSocket):
            path = self.listener.cfg_addr
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
            else:
                self.log.debug("removed unix socket: %s", path)
        self.listener = None
        self.restore_signals()
        self.state = self.TERMINATED
