# -*- coding: utf-8 -
#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import sys

from fcgiwrap.arbiter import Arbiter
from fcgiwrap.config import Config
from fcgiwrap.errors import ConfigError, HaltServer
from fcgiwrap.glogging import Logger


class Application(object):
    """\
    Load the configuration, set up logging and run the arbiter.
    """

    def __init__(self, usage=None, prog=None):
        self.usage = usage
        self.cfg = None
        self.prog = prog
        self.logger = None
        self.do_load_config()

    def do_load_config(self):
        try:
            self.load_config()
        except Exception as e:
            sys.stderr.write("\nError: %s\n" % str(e))
            sys.stderr.flush()
            sys.exit(1)

    def load_default_config(self):
        # init configuration
        self.cfg = Config(self.usage, prog=self.prog)

    def load_config(self, argv=None):
        self.load_default_config()

        # parse console args
        parser = self.cfg.parser()
        args = parser.parse_args(argv)

        # Load up environment configuration
        env_args = parser.parse_args(self.cfg.get_cmd_args_from_env())
        for k, v in vars(env_args).items():
            if v is None:
                continue
            self.cfg.set(k.lower(), v)

        # Lastly, update the configuration with any command line
        # settings.
        for k, v in vars(args).items():
            if v is None:
                continue
            self.cfg.set(k.lower(), v)

    def run(self):
        try:
            self.logger = Logger(self.cfg)
        except RuntimeError as e:
            sys.stderr.write("\nError: %s\n\n" % e)
            sys.stderr.flush()
            sys.exit(1)

        self.logger.info("starting fcgiwrap (workers: %d, timeout: %s, "
                         "socket: %r)", self.cfg.workers, self.cfg.timeout,
                         self.cfg.socket)
        try:
            Arbiter(self.cfg, self.logger).run()
        except ConfigError as e:
            self.logger.error("Initializing listener failed: %s", e)
            sys.stderr.write("\nError: %s\n\n" % e)
            sys.stderr.flush()
            sys.exit(1)
        except HaltServer as e:
            self.logger.error("Halting: %s", e.reason)
            sys.exit(e.exit_status)
        sys.exit(0)


def run(prog=None):
    """\
    The ``fcgiwrap`` command line runner.
    """
    Application("%(prog)s [OPTIONS]", prog=prog).run()


if __name__ == '__main__':
    run()
