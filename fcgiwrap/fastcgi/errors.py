#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

# pylint: disable=super-init-not-called


class FastCGIParseException(Exception):
    """Base exception for FastCGI protocol parsing errors."""


class InvalidFastCGIRecord(FastCGIParseException):
    """Raised when a FastCGI record is malformed."""

    def __init__(self, msg=""):
        self.msg = msg

    def __str__(self):
        return "Invalid FastCGI record: %s" % self.msg


class UnsupportedRole(FastCGIParseException):
    """Raised when the FastCGI role is not RESPONDER."""

    def __init__(self, role):
        self.role = role

    def __str__(self):
        return "Unsupported FastCGI role: %d" % self.role


class ConnectionClosed(FastCGIParseException):
    """Raised when the peer closes the connection between records."""

    def __str__(self):
        return "FastCGI connection closed"
