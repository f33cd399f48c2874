#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import subprocess
import threading
import time

from fcgiwrap import util
from fcgiwrap.cgi.environ import environ_dict
from fcgiwrap.cgi.errors import StartFailure


class CGIJob(object):
    """One execution of a CGI script.

    The request body is copied into the script on a thread of its own so
    that reading the output never waits on the input and the other way
    around. With a stderr sink a second thread pumps the script's
    diagnostics into it, otherwise the script shares our stderr.
    """

    def __init__(self, script, environ, log):
        self.script = script
        self.environ = environ
        self.log = log

        self.proc = None
        self.started_at = None
        self.failure = None
        self.killed = False
        self.returncode = None
        self._lock = threading.Lock()
        self._pumps = []

    def __repr__(self):
        return "<CGIJob %s pid=%s>" % (self.script.path, self.pid)

    @property
    def pid(self):
        return self.proc.pid if self.proc is not None else None

    @property
    def stdout(self):
        return self.proc.stdout

    def start(self, stderr_sink=None):
        stderr = subprocess.PIPE if stderr_sink is not None else None
        try:
            self.proc = subprocess.Popen(
                [self.script.path],
                cwd=self.script.workdir,
                env=environ_dict(self.environ),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=stderr,
                close_fds=True,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            raise StartFailure(self.script.path, e)

        self.started_at = time.monotonic()
        self.log.debug("CGI process %d started: %s", self.proc.pid,
                       self.script.path)

        if stderr_sink is not None:
            t = self._spawn(self._pump_stderr, stderr_sink, "stderr")
            self._pumps.append(t)

    def feed(self, body):
        """Copy the readable ``body`` into the script's input."""
        self._spawn(self._copy_input, body, "stdin")

    def _spawn(self, target, arg, what):
        t = threading.Thread(target=target, args=(arg,),
                             name="cgi-%s-%d" % (what, self.proc.pid))
        t.daemon = True
        t.start()
        return t

    def _copy_input(self, body):
        stdin = self.proc.stdin
        try:
            while True:
                data = body.read(util.CHUNK_SIZE)
                if not data:
                    break
                stdin.write(data)
                stdin.flush()
        except BrokenPipeError:
            # the script does not want (more of) the body
            pass
        except (OSError, ValueError) as e:
            self.failure = e
            self.log.debug("Copying request body to CGI process %d "
                           "failed: %s", self.proc.pid, e)
            self.kill()
        finally:
            try:
                stdin.close()
            except OSError:
                pass

    def _pump_stderr(self, sink):
        stream = self.proc.stderr
        try:
            while True:
                data = stream.read1(util.CHUNK_SIZE)
                if not data:
                    break
                if sink is None:
                    continue
                try:
                    sink(data)
                except OSError as e:
                    # keep draining so the script never blocks on stderr
                    self.log.debug("Cannot forward CGI stderr: %s", e)
                    sink = None
        except (OSError, ValueError) as e:
            self.log.debug("Reading CGI stderr failed: %s", e)
        finally:
            util.close(stream)

    def kill(self):
        with self._lock:
            if self.proc is None or self.proc.poll() is not None:
                return
            try:
                self.proc.kill()
            except ProcessLookupError:
                return
            self.killed = True
        self.log.debug("CGI process %d killed", self.proc.pid)

    def wait(self):
        """Reap the process and return its exit status.

        A process ended by a signal reports 128 plus the signal number, as
        a shell would.
        """
        if self.returncode is not None:
            return self.returncode

        returncode = self.proc.wait()
        for t in self._pumps:
            t.join()
        util.close(self.proc.stdout)

        if returncode < 0:
            returncode = 128 - returncode
        self.returncode = returncode

        duration = time.monotonic() - self.started_at
        if self.killed:
            self.log.debug("CGI process %d finished after being killed",
                           self.proc.pid)
        elif returncode != 0:
            self.log.error("CGI exited with error: %s status %d",
                           self.script.path, returncode)
        else:
            self.log.debug("CGI process %d finished in %.3fs",
                           self.proc.pid, duration)
        return returncode
