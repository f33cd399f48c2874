# -*- coding: utf-8 -
#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import errno
import os
import socket
import stat

from fcgiwrap import util
from fcgiwrap.errors import ConfigError

# the web server hands a listening socket over on this descriptor
FCGI_LISTENSOCK_FILENO = 0


class BaseSocket(object):

    def __init__(self, address, conf, log, fd=None):
        self.log = log
        self.conf = conf

        self.cfg_addr = address
        if fd is None:
            sock = socket.socket(self.FAMILY, socket.SOCK_STREAM)
            bound = False
        else:
            sock = socket.socket(fileno=fd)
            bound = True

        self.sock = self.set_options(sock, bound=bound)

    def __str__(self):
        return "<socket %d>" % self.sock.fileno()

    def __getattr__(self, name):
        return getattr(self.sock, name)

    def set_options(self, sock, bound=False):
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if not bound:
            self.bind(sock)
        sock.setblocking(False)

        # the listener must not leak into CGI scripts
        sock.set_inheritable(False)

        sock.listen(self.conf.backlog)
        return sock

    def bind(self, sock):
        sock.bind(self.cfg_addr)

    def close(self):
        if self.sock is None:
            return

        try:
            self.sock.close()
        except OSError as e:
            self.log.info("Error while closing socket %s", str(e))

        self.sock = None


class TCPSocket(BaseSocket):

    FAMILY = socket.AF_INET

    def __str__(self):
        addr = self.sock.getsockname()
        return "tcp:%s:%d" % (addr[0], addr[1])

    def set_options(self, sock, bound=False):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return super().set_options(sock, bound=bound)


class TCP6Socket(TCPSocket):

    FAMILY = socket.AF_INET6

    def __str__(self):
        (host, port, _, _) = self.sock.getsockname()
        return "tcp:[%s]:%d" % (host, port)


class UnixSocket(BaseSocket):

    FAMILY = socket.AF_UNIX

    def __init__(self, addr, conf, log, fd=None):
        if fd is None:
            try:
                st = os.lstat(addr)
            except OSError as e:
                if e.args[0] != errno.ENOENT:
                    raise
            else:
                if stat.S_ISDIR(st.st_mode):
                    raise ValueError("%r is a directory" % addr)
                # a stale socket or any other file left at the path
                os.remove(addr)
        super().__init__(addr, conf, log, fd=fd)

    def __str__(self):
        return "unix:%s" % self.cfg_addr


class StdinSocket(BaseSocket):
    """The FastCGI listening socket inherited on standard input.

    Closing it is best effort: the descriptor belongs to whoever spawned
    us, so only our duplicate is closed.
    """

    def __init__(self, conf, log, fd=FCGI_LISTENSOCK_FILENO):
        try:
            dup = os.dup(fd)
        except OSError as e:
            raise ConfigError("cannot use standard input as socket: %s" % e)
        try:
            super().__init__(None, conf, log, fd=dup)
        except OSError as e:
            os.close(dup)
            if e.errno == errno.ENOTSOCK:
                raise ConfigError("standard input is not a socket")
            raise ConfigError("cannot use standard input as socket: %s" % e)

    def __str__(self):
        return "stdin"

    def set_options(self, sock, bound=False):
        if sock.type != socket.SOCK_STREAM:
            raise ConfigError("standard input is not a stream socket")
        return super().set_options(sock, bound=True)


def _sock_type(addr):
    if addr is None:
        sock_type = StdinSocket
    elif isinstance(addr, tuple):
        if util.is_ipv6(addr[0]):
            sock_type = TCP6Socket
        else:
            sock_type = TCPSocket
    elif isinstance(addr, (str, bytes)):
        sock_type = UnixSocket
    else:
        raise TypeError("Unable to create socket from: %r" % addr)
    return sock_type


def create_socket(conf, log):
    """
    Create the listening socket for the configured address.

    No address means the socket inherited on standard input, a tuple is
    a TCP socket and a string a Unix socket. Failures are fatal and
    raised as ConfigError.
    """
    addr = conf.address
    sock_type = _sock_type(addr)

    if sock_type is StdinSocket:
        log.info("using stdin for FastCGI socket")
        return StdinSocket(conf, log)

    try:
        listener = sock_type(addr, conf, log)
    except (OSError, ValueError) as e:
        if getattr(e, "errno", None) == errno.EADDRINUSE:
            log.error("Connection in use: %s", addr)
        elif getattr(e, "errno", None) == errno.EADDRNOTAVAIL:
            log.error("Invalid address: %s", addr)
        raise ConfigError("listen on %s failed: %s" % (addr, e))

    log.info("Listening at: %s", listener)
    return listener


def close_socket(listener, unlink=True):
    """Close the listener and remove a unix socket file we created."""
    if isinstance(listener, UnixSocket):
        path = listener.cfg_addr
    else:
        path = None
    listener.close()
    if unlink and path is not None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
