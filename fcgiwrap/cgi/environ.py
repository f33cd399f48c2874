#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

"""Environment handed to CGI scripts.

Scripts get the request parameters plus the environment of this process,
minus the CGI meta-variables (only the web server may set those) and the
variables steering the dynamic loader.
"""

import os

FORBIDDEN_INHERIT = frozenset((
    # CGI meta-variables
    "AUTH_TYPE",
    "CONTENT_LENGTH",
    "CONTENT_TYPE",
    "GATEWAY_INTERFACE",
    "PATH_INFO",
    "PATH_TRANSLATED",
    "QUERY_STRING",
    "REMOTE_ADDR",
    "REMOTE_HOST",
    "REMOTE_IDENT",
    "REMOTE_USER",
    "REQUEST_METHOD",
    "SCRIPT_NAME",
    "SERVER_NAME",
    "SERVER_PORT",
    "SERVER_PROTOCOL",
    "SERVER_SOFTWARE",
    # dynamic loader
    "LD_PRELOAD",
    "LD_LIBRARY_PATH",
    "LD_AUDIT",
    "LD_DEBUG",
    "LD_DYNAMIC_WEAK",
    "LD_BIND_NOW",
    "LD_ORIGIN_PATH",
    "LD_ASSUME_KERNEL",
    "LD_CONFIG_FILE",
))


def allowed_inherit(name):
    if name in FORBIDDEN_INHERIT:
        return False
    # HTTP_* variables carry request headers
    return not name.startswith("HTTP")


def valid_entry(name, value):
    return bool(name) and "=" not in name and "\0" not in name \
        and "\0" not in value


def inherited_environ(environ=None):
    """Return the ``NAME=VALUE`` entries scripts inherit from ``environ``."""
    if environ is None:
        environ = os.environ
    return ["%s=%s" % (k, v) for k, v in environ.items()
            if allowed_inherit(k) and valid_entry(k, v)]


def build_environ(params, inherited):
    """Merge the request parameters with the inherited entries.

    Request parameters come first and win over inherited entries of the
    same name. Each name appears once.
    """
    env = []
    seen = set()
    for name, value in params.items():
        if name in seen or not valid_entry(name, value):
            continue
        env.append("%s=%s" % (name, value))
        seen.add(name)

    for entry in inherited:
        name = entry.split("=", 1)[0]
        if name in seen:
            continue
        env.append(entry)
        seen.add(name)
    return env


def environ_dict(entries):
    """Turn ``NAME=VALUE`` entries into the mapping subprocess expects."""
    return dict(entry.split("=", 1) for entry in entries)
