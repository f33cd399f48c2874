#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

# design:
# Every request passes through an ordered list of stages before it reaches
# the CGI responder. A stage gets the shared admission state, the request
# and the rest of the pipeline; whatever it sets up on the way in it undoes
# in a finally clause, so all exit paths unwind in reverse order.

import collections
import functools
import threading
import time


class RequestCancelled(Exception):
    """The request went away while it was waiting for a worker slot."""

    def __init__(self, reason):
        self.reason = reason

    def __str__(self):
        return "request cancelled: %s" % self.reason


class TokenPool(object):
    """At most ``size`` permits handed out at a time."""

    def __init__(self, size):
        if size < 1:
            raise ValueError("pool size must be positive: %r" % size)
        self.size = size
        self.available = size
        self._cond = threading.Condition(threading.Lock())

    def acquire(self, context=None):
        """Take a permit, waiting for one to be released.

        Raises RequestCancelled as soon as ``context`` is cancelled, in
        which case no permit is taken.
        """
        if context is not None:
            context.add_callback(self._wake)
        try:
            with self._cond:
                while True:
                    if context is not None and context.cancelled:
                        raise RequestCancelled(context.reason)
                    if self.available > 0:
                        self.available -= 1
                        return
                    self._cond.wait()
        finally:
            if context is not None:
                context.remove_callback(self._wake)

    def release(self):
        with self._cond:
            if self.available >= self.size:
                raise RuntimeError("token released too many times")
            self.available += 1
            self._cond.notify_all()

    def _wake(self):
        with self._cond:
            self._cond.notify_all()


class ActiveJobs(object):
    """Count of admitted requests that have not completed."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self.count = 0

    def enter(self):
        with self._cond:
            self.count += 1

    def leave(self):
        with self._cond:
            if self.count <= 0:
                raise RuntimeError("no active job to leave")
            self.count -= 1
            if self.count == 0:
                self._cond.notify_all()

    def wait_idle(self, timeout=None):
        """Wait until no job is active. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self.count == 0, timeout)


class IdleTimer(object):
    """Deadline that moves forward on every reset.

    A timeout of zero leaves the timer disarmed: it never expires.
    """

    def __init__(self, timeout, clock=time.monotonic):
        self.timeout = timeout
        self.clock = clock
        self._lock = threading.Lock()
        self.deadline = None
        if timeout > 0:
            self.deadline = clock() + timeout

    @property
    def armed(self):
        return self.deadline is not None

    def reset(self):
        with self._lock:
            if self.deadline is not None:
                self.deadline = self.clock() + self.timeout

    def remaining(self):
        with self._lock:
            if self.deadline is None:
                return None
            return max(0.0, self.deadline - self.clock())

    def expired(self):
        with self._lock:
            return self.deadline is not None and \
                self.clock() >= self.deadline


AdmissionState = collections.namedtuple("AdmissionState",
                                        ["jobs", "tokens", "timer"])


def make_state(cfg, clock=time.monotonic):
    limit = cfg.worker_limit
    return AdmissionState(
        jobs=ActiveJobs(),
        tokens=TokenPool(limit) if limit else None,
        timer=IdleTimer(cfg.idle_timeout, clock),
    )


def track_job(state, req, handler):
    state.jobs.enter()
    try:
        return handler(req)
    finally:
        state.jobs.leave()


def refresh_idle(state, req, handler):
    state.timer.reset()
    try:
        return handler(req)
    finally:
        state.timer.reset()


def limit_workers(state, req, handler):
    if state.tokens is None:
        return handler(req)

    state.tokens.acquire(req.context)
    try:
        return handler(req)
    finally:
        state.tokens.release()


STAGES = (track_job, refresh_idle, limit_workers)


class Dispatcher(object):
    """Run requests through the admission stages, then ``handler``."""

    def __init__(self, state, handler, log, stages=STAGES):
        self.state = state
        self.handler = handler
        self.log = log
        self.stages = tuple(stages)

    def __call__(self, req):
        try:
            return self.run_stage(0, req)
        except RequestCancelled as e:
            self.log.error("Failed waiting for worker slot: %s", e)
            return 0

    def run_stage(self, index, req):
        if index == len(self.stages):
            return self.handler(req)
        stage = self.stages[index]
        return stage(self.state, req,
                     functools.partial(self.run_stage, index + 1))
