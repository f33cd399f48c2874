#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import pytest

from fcgiwrap.cgi import environ


@pytest.mark.parametrize("name", [
    "HTTP_FOO", "HTTP_PROXY", "HTTPS", "QUERY_STRING", "SCRIPT_NAME",
    "SERVER_SOFTWARE", "LD_PRELOAD", "LD_LIBRARY_PATH", "LD_CONFIG_FILE",
])
def test_forbidden_names(name):
    assert not environ.allowed_inherit(name)


@pytest.mark.parametrize("name", ["PATH", "HOME", "LANG", "TZ", "XHTTP"])
def test_allowed_names(name):
    assert environ.allowed_inherit(name)


def test_forbidden_set_is_immutable():
    assert isinstance(environ.FORBIDDEN_INHERIT, frozenset)
    assert len(environ.FORBIDDEN_INHERIT) == 26


def test_inherited_environ():
    host = {
        "PATH": "/usr/bin:/bin",
        "HTTP_FOO": "bar",
        "QUERY_STRING": "a=1",
        "LD_PRELOAD": "/tmp/evil.so",
        "LANG": "C.UTF-8",
    }
    assert environ.inherited_environ(host) == [
        "PATH=/usr/bin:/bin",
        "LANG=C.UTF-8",
    ]


def test_inherited_environ_defaults_to_os_environ(monkeypatch):
    monkeypatch.setenv("FCGIWRAP_TEST_VAR", "1")
    monkeypatch.setenv("HTTP_FCGIWRAP_TEST", "1")
    inherited = environ.inherited_environ()
    assert "FCGIWRAP_TEST_VAR=1" in inherited
    assert "HTTP_FCGIWRAP_TEST=1" not in inherited


def test_build_environ_request_wins():
    params = {"QUERY_STRING": "a=1", "PATH": "/request/bin"}
    inherited = ["PATH=/usr/bin", "HOME=/root"]
    assert environ.build_environ(params, inherited) == [
        "QUERY_STRING=a=1",
        "PATH=/request/bin",
        "HOME=/root",
    ]


def test_build_environ_no_duplicates():
    env = environ.build_environ({"A": "1"}, ["A=2", "B=3", "B=4"])
    assert env == ["A=1", "B=3"]


def test_build_environ_drops_unusable_entries():
    params = {"": "x", "A=B": "c", "NUL": "v\0x", "OK": "yes"}
    assert environ.build_environ(params, []) == ["OK=yes"]


def test_environ_dict():
    assert environ.environ_dict(["A=1", "B=x=y", "C="]) == {
        "A": "1",
        "B": "x=y",
        "C": "",
    }
