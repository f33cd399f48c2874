#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

"""Pytest configuration for fcgiwrap tests."""

import os
import shutil
import sys
import tempfile
import textwrap
from unittest import mock

import pytest

# Add the tests directory to sys.path so test support modules can be imported
tests_dir = os.path.dirname(os.path.abspath(__file__))
if tests_dir not in sys.path:
    sys.path.insert(0, tests_dir)


@pytest.fixture
def log():
    return mock.Mock()


@pytest.fixture
def sock_dir():
    # unix socket paths are limited to ~100 bytes, keep them short
    path = tempfile.mkdtemp(prefix="fcgi", dir="/tmp")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def docroot(tmp_path):
    root = tmp_path / "www"
    root.mkdir()
    return root


@pytest.fixture
def make_script(docroot):
    """Write an executable shell script, below the document root by default."""

    def _make(name, body, mode=0o755, root=None):
        path = (root or docroot) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + textwrap.dedent(body))
        path.chmod(mode)
        return path

    return _make


@pytest.fixture
def host_path():
    return "PATH=%s" % os.environ.get("PATH", "/usr/bin:/bin")
