# -*- coding: utf-8 -
#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import fcntl
import os
import socket

from fcgiwrap.errors import ConfigError

CHUNK_SIZE = (16 * 1024)


def is_ipv6(addr):
    try:
        socket.inet_pton(socket.AF_INET6, addr)
    except (OSError, ValueError):  # not a valid address
        return False
    return True


def parse_address(netloc):
    """Split a ``host:port`` string, ``[v6]:port`` included.

    The port is mandatory. An empty host listens on all interfaces.
    """
    # get host
    if '[' in netloc and ']' in netloc:
        host = netloc.split(']')[0][1:].lower()
    elif ':' in netloc:
        host = netloc.rsplit(':', 1)[0].lower()
    else:
        raise ConfigError("missing port in address %r" % netloc)

    if host == "":
        host = "0.0.0.0"

    # get port
    rest = netloc.split(']')[-1]
    if ":" not in rest:
        raise ConfigError("missing port in address %r" % netloc)
    port = rest.rsplit(':', 1)[1]
    if not port.isdigit() or int(port) > 65535:
        raise ConfigError("%r is not a valid port number." % port)
    return (host, int(port))


def parse_socket_spec(spec):
    """Parse the ``socket`` setting.

    ``""`` selects the FastCGI socket inherited on standard input and
    returns None, ``unix:PATH`` returns the path and ``tcp:HOST:PORT``
    returns a ``(host, port)`` tuple.
    """
    if spec is None or spec == "":
        return None
    if spec.startswith("unix:"):
        path = spec[len("unix:"):]
        if not path:
            raise ConfigError("invalid socket URL %r: empty path" % spec)
        return path
    if spec.startswith("tcp:"):
        return parse_address(spec[len("tcp:"):])
    raise ConfigError("invalid socket URL %r" % spec)


def close_on_exec(fd):
    flags = fcntl.fcntl(fd, fcntl.F_GETFD)
    flags |= fcntl.FD_CLOEXEC
    fcntl.fcntl(fd, fcntl.F_SETFD, flags)


def set_non_blocking(fd):
    flags = fcntl.fcntl(fd, fcntl.F_GETFL) | os.O_NONBLOCK
    fcntl.fcntl(fd, fcntl.F_SETFL, flags)


def close(sock):
    try:
        sock.close()
    except OSError:
        pass


def to_bytestring(value, encoding="latin-1"):
    """Converts a string argument to a byte string"""
    if isinstance(value, bytes):
        return value
    if not isinstance(value, str):
        raise TypeError('%r is not a string' % value)

    return value.encode(encoding)
