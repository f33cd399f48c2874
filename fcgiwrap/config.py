# -*- coding: utf-8 -
#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import argparse
import copy
import os
import shlex
import sys
import textwrap

from fcgiwrap import __version__, util
from fcgiwrap.errors import ConfigError

KNOWN_SETTINGS = []


def make_settings():
    settings = {}
    for s in KNOWN_SETTINGS:
        setting = s()
        settings[setting.name] = setting.copy()
    return settings


class Config(object):

    def __init__(self, usage=None, prog=None):
        self.settings = make_settings()
        self.usage = usage
        self.prog = prog or os.path.basename(sys.argv[0])
        self.env_orig = os.environ.copy()

    def __getattr__(self, name):
        if name not in self.settings:
            raise AttributeError("No configuration setting for: %s" % name)
        return self.settings[name].get()

    def __setattr__(self, name, value):
        if name != "settings" and name in self.settings:
            raise AttributeError("Invalid access!")
        super().__setattr__(name, value)

    def set(self, name, value):
        if name not in self.settings:
            raise AttributeError("No configuration setting for: %s" % name)
        self.settings[name].set(value)

    def get_cmd_args_from_env(self):
        if 'FCGIWRAP_CMD_ARGS' in self.env_orig:
            return shlex.split(self.env_orig['FCGIWRAP_CMD_ARGS'])
        return []

    def parser(self):
        kwargs = {
            "usage": self.usage,
            "prog": self.prog
        }
        parser = argparse.ArgumentParser(**kwargs)
        parser.add_argument("-v", "--version",
                            action="version", default=argparse.SUPPRESS,
                            version="%(prog)s (version " + __version__ + ")\n",
                            help="show program's version number and exit")

        keys = sorted(self.settings, key=self.settings.__getitem__)
        for k in keys:
            self.settings[k].add_option(parser)

        return parser

    @property
    def address(self):
        return util.parse_socket_spec(self.settings['socket'].get())

    @property
    def idle_timeout(self):
        timeout = self.settings['timeout'].get()
        return timeout if timeout > 0 else 0

    @property
    def worker_limit(self):
        workers = self.settings['workers'].get()
        return workers if workers > 0 else None


class SettingMeta(type):
    def __new__(cls, name, bases, attrs):
        super_new = super().__new__
        parents = [b for b in bases if isinstance(b, SettingMeta)]
        if not parents:
            return super_new(cls, name, bases, attrs)

        attrs["order"] = len(KNOWN_SETTINGS)
        attrs["validator"] = staticmethod(attrs["validator"])

        new_class = super_new(cls, name, bases, attrs)
        new_class.fmt_desc(attrs.get("desc", ""))
        KNOWN_SETTINGS.append(new_class)
        return new_class

    def fmt_desc(cls, desc):
        desc = textwrap.dedent(desc).strip()
        setattr(cls, "desc", desc)
        setattr(cls, "short", desc.splitlines()[0])


class Setting(object):
    name = None
    value = None
    section = None
    cli = None
    validator = None
    type = None
    meta = None
    action = None
    default = None
    short = None
    desc = None
    nargs = None
    const = None
    choices = None

    def __init__(self):
        if self.default is not None:
            self.set(self.default)

    def add_option(self, parser):
        if not self.cli:
            return
        args = tuple(self.cli)

        help_txt = "%s [%s]" % (self.short, self.default)
        help_txt = help_txt.replace("%", "%%")

        kwargs = {
            "dest": self.name,
            "action": self.action or "store",
            "type": self.type or str,
            "default": None,
            "help": help_txt
        }

        if self.meta is not None:
            kwargs['metavar'] = self.meta

        if kwargs["action"] != "store":
            kwargs.pop("type")

        if self.nargs is not None:
            kwargs["nargs"] = self.nargs

        if self.const is not None:
            kwargs["const"] = self.const

        if self.choices is not None:
            kwargs["choices"] = self.choices

        parser.add_argument(*args, **kwargs)

    def copy(self):
        return copy.copy(self)

    def get(self):
        return self.value

    def set(self, val):
        if not callable(self.validator):
            raise TypeError('Invalid validator: %s' % self.name)
        self.value = self.validator(val)

    def __lt__(self, other):
        return (self.section == other.section and
                self.order < other.order)

    def __repr__(self):
        return "<%s.%s object at %x with value %r>" % (
            self.__class__.__module__,
            self.__class__.__name__,
            id(self),
            self.value,
        )


Setting = SettingMeta('Setting', (Setting,), {})


def validate_bool(val):
    if val is None:
        return

    if isinstance(val, bool):
        return val
    if not isinstance(val, str):
        raise TypeError("Invalid type for casting: %s" % val)
    if val.lower().strip() == "true":
        return True
    elif val.lower().strip() == "false":
        return False
    else:
        raise ValueError("Invalid boolean: %s" % val)


def validate_int(val):
    if not isinstance(val, int):
        val = int(val, 0)
    else:
        # Booleans are ints!
        val = int(val)
    return val


def validate_pos_int(val):
    val = validate_int(val)
    if val < 0:
        raise ValueError("Value must be positive: %s" % val)
    return val


def validate_pos_number(val):
    if isinstance(val, str):
        val = float(val)
    if not isinstance(val, (int, float)) or isinstance(val, bool):
        raise TypeError("Not a number: %s" % val)
    if val < 0:
        raise ValueError("Value must be positive: %s" % val)
    return val


def validate_string(val):
    if val is None:
        return None
    if not isinstance(val, str):
        raise TypeError("Not a string: %s" % val)
    return val.strip()


def validate_socket(val):
    val = validate_string(val) or ""
    try:
        util.parse_socket_spec(val)
    except ConfigError as e:
        raise ValueError(str(e))
    return val


def validate_log_format(val):
    val = validate_string(val)
    if val is None or val.lower() not in ("json", "text"):
        raise ValueError("Invalid log format: %r (expected 'json' or 'text')"
                         % val)
    return val.lower()


class Socket(Setting):
    name = "socket"
    section = "Server Socket"
    cli = ["-s", "--socket"]
    meta = "URL"
    validator = validate_socket
    default = ""
    desc = """\
        The socket to listen on for FastCGI connections.

        A string of the form ``unix:PATH`` or ``tcp:HOST:PORT``. IPv6 hosts
        are written in brackets, ``tcp:[::1]:9000``. An empty value (the
        default) serves the FastCGI listening socket passed on standard
        input by the web server or a process manager such as spawn-fcgi.

        A file already present at a unix socket path is removed before
        binding and the socket file is removed again on exit.
        """


class Backlog(Setting):
    name = "backlog"
    section = "Server Socket"
    cli = ["--backlog"]
    meta = "INT"
    validator = validate_pos_int
    type = int
    default = 2048
    desc = """\
        The maximum number of pending connections.

        This refers to the number of clients that can be waiting to be served.
        Must be a positive integer. Generally set in the 64-2048 range.
        """


class Workers(Setting):
    name = "workers"
    section = "Worker Processes"
    cli = ["-w", "--workers"]
    meta = "INT"
    validator = validate_int
    type = int
    default = 1
    desc = """\
        The maximum number of CGI scripts running at the same time.

        Requests above this limit wait for a running script to finish.
        Zero or a negative value removes the limit.
        """


class Timeout(Setting):
    name = "timeout"
    section = "Worker Processes"
    cli = ["-t", "--timeout"]
    meta = "SECONDS"
    validator = validate_pos_number
    type = float
    default = 0
    desc = """\
        Idle timeout in seconds.

        The server shuts down when no request has been started or finished
        within this period and no script is running. Activity restarts the
        period. Zero (the default) disables the idle timeout.
        """


class GracefulTimeout(Setting):
    name = "graceful_timeout"
    section = "Worker Processes"
    cli = ["--graceful-timeout"]
    meta = "SECONDS"
    validator = validate_pos_number
    type = float
    default = 30
    desc = """\
        Timeout for running scripts to finish on shutdown.

        After receiving a termination signal or reaching the idle timeout,
        the server stops accepting connections and waits this long for
        in-flight requests. Scripts still running afterwards are left
        behind when the process exits.
        """


class ForwardStderr(Setting):
    name = "forward_stderr"
    section = "Worker Processes"
    cli = ["-f", "--forward-stderr"]
    validator = validate_bool
    action = "store_true"
    default = False
    desc = """\
        Forward the standard error of CGI scripts over FastCGI.

        By default script diagnostics go to the standard error of this
        process. When enabled they are sent to the web server as
        ``FCGI_STDERR`` records, which most servers write to their error log.
        """


class LogFormat(Setting):
    name = "log_format"
    section = "Logging"
    cli = ["--log-format"]
    meta = "FORMAT"
    validator = validate_log_format
    default = "json"
    desc = """\
        The format of log records.

        ``json`` writes one JSON object per line, ``text`` writes
        human-readable lines.
        """


class Loglevel(Setting):
    name = "loglevel"
    section = "Logging"
    cli = ["--log-level"]
    meta = "LEVEL"
    validator = validate_string
    default = "info"
    desc = """\
        The granularity of Error log outputs.

        Valid level names are:

        * ``'debug'``
        * ``'info'``
        * ``'warning'``
        * ``'error'``
        * ``'critical'``
        """


class ErrorLog(Setting):
    name = "errorlog"
    section = "Logging"
    cli = ["--error-logfile", "--log-file"]
    meta = "FILE"
    validator = validate_string
    default = '-'
    desc = """\
        The Error log file to write to.

        Using ``'-'`` for FILE makes fcgiwrap log to stderr.
        """
