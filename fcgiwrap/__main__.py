#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

from fcgiwrap.app import run

if __name__ == "__main__":
    run(prog="fcgiwrap")
