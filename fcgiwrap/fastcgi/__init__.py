#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

from fcgiwrap.fastcgi.connection import (
    BodyStream,
    FastCGIConnection,
    FastCGIRequest,
    RequestAborted,
    RequestContext,
)
from fcgiwrap.fastcgi.record import Record
from fcgiwrap.fastcgi.response import FastCGIResponse, InvalidResponseHeader
from fcgiwrap.fastcgi.server import FastCGIServer
from fcgiwrap.fastcgi.errors import (
    ConnectionClosed,
    FastCGIParseException,
    InvalidFastCGIRecord,
    UnsupportedRole,
)

__all__ = [
    'BodyStream',
    'FastCGIConnection',
    'FastCGIRequest',
    'RequestAborted',
    'RequestContext',
    'Record',
    'FastCGIResponse',
    'InvalidResponseHeader',
    'FastCGIServer',
    'ConnectionClosed',
    'FastCGIParseException',
    'InvalidFastCGIRecord',
    'UnsupportedRole',
]
