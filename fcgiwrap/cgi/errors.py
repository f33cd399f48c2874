#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

# pylint: disable=super-init-not-called


class CGIError(Exception):
    """Base class of errors answered to the web server."""
    code = 500


class ScriptError(CGIError):
    """The requested script may not be executed."""
    code = 403

    def __init__(self, path="", msg=""):
        self.path = path
        self.msg = msg

    def __str__(self):
        if self.path:
            return "%s: %s" % (self.msg, self.path)
        return self.msg


class MissingDocumentRoot(ScriptError):

    def __init__(self):
        self.path = ""
        self.msg = "missing document root"


class MissingScriptName(ScriptError):

    def __init__(self):
        self.path = ""
        self.msg = "missing script name"


class ScriptNotAbsolute(ScriptError):

    def __init__(self, path):
        self.path = path
        self.msg = "script path must be absolute"


class ScriptOutsideDocumentRoot(ScriptError):

    def __init__(self, path, document_root):
        self.path = path
        self.document_root = document_root
        self.msg = "script path outside document root"

    def __str__(self):
        return "%s (%s): %s" % (self.msg, self.document_root, self.path)


class ScriptNotFound(ScriptError):

    def __init__(self, path):
        self.path = path
        self.msg = "script not found"


class SymlinkUnsupported(ScriptError):

    def __init__(self, path):
        self.path = path
        self.msg = "symlinks unsupported"


class NotRegularFile(ScriptError):

    def __init__(self, path):
        self.path = path
        self.msg = "script is not a regular file"


class ScriptNotExecutable(ScriptError):

    def __init__(self, path):
        self.path = path
        self.msg = "script not executable"


class InvalidChdir(ScriptError):

    def __init__(self, path, reason):
        self.path = path
        self.msg = "FCGI_CHDIR %s" % reason


class StartFailure(CGIError):
    """The script process could not be spawned."""
    code = 502

    def __init__(self, path, error):
        self.path = path
        self.error = error

    def __str__(self):
        return "failed to start CGI: %s: %s" % (self.path, self.error)


class MalformedResponse(CGIError):
    """The script output does not start with a valid header block."""
    code = 502

    def __init__(self, reason):
        self.reason = reason

    def __str__(self):
        return "malformed CGI response: %s" % self.reason
