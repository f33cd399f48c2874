#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

"""Wire values used by the responder side of FastCGI 1.0."""

FCGI_VERSION_1 = 1

FCGI_HEADER_LEN = 8
FCGI_MAX_CONTENT_LEN = 0xFFFF

# management records carry request id 0
FCGI_NULL_REQUEST_ID = 0

# record types sent by the web server
FCGI_BEGIN_REQUEST = 1
FCGI_ABORT_REQUEST = 2
FCGI_PARAMS = 4
FCGI_STDIN = 5
FCGI_DATA = 8
FCGI_GET_VALUES = 9

# record types we send
FCGI_END_REQUEST = 3
FCGI_STDOUT = 6
FCGI_STDERR = 7
FCGI_GET_VALUES_RESULT = 10
FCGI_UNKNOWN_TYPE = 11

FCGI_RECORD_TYPES = {
    FCGI_BEGIN_REQUEST: 'BEGIN_REQUEST',
    FCGI_ABORT_REQUEST: 'ABORT_REQUEST',
    FCGI_END_REQUEST: 'END_REQUEST',
    FCGI_PARAMS: 'PARAMS',
    FCGI_STDIN: 'STDIN',
    FCGI_STDOUT: 'STDOUT',
    FCGI_STDERR: 'STDERR',
    FCGI_DATA: 'DATA',
    FCGI_GET_VALUES: 'GET_VALUES',
    FCGI_GET_VALUES_RESULT: 'GET_VALUES_RESULT',
    FCGI_UNKNOWN_TYPE: 'UNKNOWN_TYPE',
}

# BEGIN_REQUEST: only the responder role runs CGI scripts
FCGI_RESPONDER = 1
FCGI_AUTHORIZER = 2
FCGI_KEEP_CONN = 1

# END_REQUEST protocol status
FCGI_REQUEST_COMPLETE = 0
FCGI_UNKNOWN_ROLE = 3

# GET_VALUES variables
FCGI_MAX_CONNS = 'FCGI_MAX_CONNS'
FCGI_MAX_REQS = 'FCGI_MAX_REQS'
FCGI_MPXS_CONNS = 'FCGI_MPXS_CONNS'

# upper bound on PARAMS pairs per request
MAX_FCGI_PARAMS = 1000
