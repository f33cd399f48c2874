# -*- coding: utf-8 -
#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import datetime
import json
import logging
import sys

logging.Logger.manager.emittedNoHandlerWarning = 1  # noqa


def loggers():
    """ get list of all loggers """
    root = logging.root
    existing = list(root.manager.loggerDict.keys())
    return [logging.getLogger(name) for name in existing]


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object.

    Keys are ``time`` (RFC 3339), ``level``, ``msg`` and ``pid``; ``error``
    holds the formatted traceback when exception info is attached.
    """

    def format(self, record):
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "msg": record.getMessage(),
            "pid": record.process,
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        elif record.exc_text:
            entry["error"] = record.exc_text
        return json.dumps(entry, default=str)

    def formatTime(self, record, datefmt=None):
        ts = datetime.datetime.fromtimestamp(record.created).astimezone()
        return ts.isoformat(timespec="milliseconds")


class Logger(object):

    LOG_LEVELS = {
        "critical": logging.CRITICAL,
        "error": logging.ERROR,
        "warning": logging.WARNING,
        "info": logging.INFO,
        "debug": logging.DEBUG
    }
    loglevel = logging.INFO

    error_fmt = r"%(asctime)s [%(process)d] [%(levelname)s] %(message)s"
    datefmt = r"[%Y-%m-%d %H:%M:%S %z]"

    def __init__(self, cfg):
        self.error_log = logging.getLogger("fcgiwrap.error")
        self.error_log.propagate = False
        self.cfg = cfg
        self.setup(cfg)

    def setup(self, cfg):
        self.loglevel = self.LOG_LEVELS.get(cfg.loglevel.lower(), logging.INFO)
        self.error_log.setLevel(self.loglevel)

        # set fcgiwrap.error handler
        self._set_handler(self.error_log, cfg.errorlog, self.formatter(cfg))

    def formatter(self, cfg):
        if cfg.log_format == "json":
            return JsonFormatter()
        return logging.Formatter(self.error_fmt, self.datefmt)

    def critical(self, msg, *args, **kwargs):
        self.error_log.critical(msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self.error_log.error(msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self.error_log.warning(msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self.error_log.info(msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        self.error_log.debug(msg, *args, **kwargs)

    def exception(self, msg, *args, **kwargs):
        self.error_log.exception(msg, *args, **kwargs)

    def log(self, lvl, msg, *args, **kwargs):
        if isinstance(lvl, str):
            lvl = self.LOG_LEVELS.get(lvl.lower(), logging.INFO)
        self.error_log.log(lvl, msg, *args, **kwargs)

    def reopen_files(self):
        for log in loggers():
            for handler in log.handlers:
                if isinstance(handler, logging.FileHandler):
                    handler.acquire()
                    try:
                        if handler.stream:
                            handler.close()
                            handler.stream = handler._open()
                    finally:
                        handler.release()

    def _get_fcgiwrap_handler(self, log):
        for h in log.handlers:
            if getattr(h, "_fcgiwrap", False):
                return h

    def _set_handler(self, log, output, fmt, stream=None):
        # remove previous fcgiwrap log handler
        h = self._get_fcgiwrap_handler(log)
        if h:
            log.handlers.remove(h)

        if output is not None:
            if output == "-":
                h = logging.StreamHandler(stream or sys.stderr)
            else:
                check_is_writable(output)
                h = logging.FileHandler(output)

            h.setFormatter(fmt)
            h._fcgiwrap = True
            log.addHandler(h)


def check_is_writable(path):
    try:
        with open(path, 'a') as f:
            f.close()
    except IOError as e:
        raise RuntimeError("Error: '%s' isn't writable [%r]" % (path, e))
