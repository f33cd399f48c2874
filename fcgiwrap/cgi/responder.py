#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

from fcgiwrap.cgi.environ import build_environ
from fcgiwrap.cgi.errors import MalformedResponse, ScriptError, StartFailure
from fcgiwrap.cgi.process import CGIJob
from fcgiwrap.cgi.response import iter_body, read_headers
from fcgiwrap.cgi.script import resolve_script
from fcgiwrap.fastcgi.response import InvalidResponseHeader


class CGIResponder(object):
    """Serve a FastCGI request by running the CGI script it names.

    Returns the exit status of the script, which becomes the application
    status of the FastCGI request.
    """

    def __init__(self, cfg, log, inherited):
        self.cfg = cfg
        self.log = log
        self.inherited = inherited

    def __call__(self, req):
        resp = req.response
        try:
            script = self.prepare(req)
        except ScriptError as e:
            self.log.warning("Preparing CGI command failed: %s", e)
            self.send_error(req, e.code, str(e))
            return 0

        job = CGIJob(script, build_environ(req.params, self.inherited),
                     self.log)
        stderr_sink = resp.write_stderr if self.cfg.forward_stderr else None
        try:
            job.start(stderr_sink)
        except StartFailure as e:
            self.log.error("Failed to start CGI: %s", e)
            self.send_error(req, e.code, str(e))
            return 0

        req.context.add_callback(job.kill)
        try:
            job.feed(req.body)
            self.proxy(req, job)
        finally:
            req.context.remove_callback(job.kill)
            status = job.wait()
        return status

    def prepare(self, req):
        script = resolve_script(req.params)
        self.log.debug("Script validated: %s", script.path)
        return script

    def proxy(self, req, job):
        resp = req.response
        try:
            headers = read_headers(job.stdout)
        except MalformedResponse as e:
            job.kill()
            if not req.context.cancelled:
                self.log.warning("Error reading CGI headers: %s", e)
                self.send_error(req, 502, "Bad Gateway")
            return

        for name, value in headers:
            try:
                resp.add_header(name, value)
            except InvalidResponseHeader as e:
                # the header block must stay parseable by the web server
                self.log.warning("Dropping CGI header: %s", e)

        try:
            resp.send_headers()
            for data in iter_body(job.stdout):
                resp.write(data)
        except (OSError, ValueError) as e:
            job.kill()
            if not req.context.cancelled:
                self.log.warning("Error copying CGI body: %s", e)

    def send_error(self, req, code, message):
        try:
            req.response.error(code, message)
        except OSError as e:
            self.log.debug("Cannot send error response: %s", e)
