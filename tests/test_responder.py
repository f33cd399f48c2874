#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import pytest

from fcgiwrap.cgi import CGIResponder
from fcgiwrap.cgi.environ import inherited_environ
from fcgiwrap.config import Config
from fcgiwrap.dispatcher import Dispatcher, make_state

from support import Peer


@pytest.fixture
def cfg():
    return Config()


@pytest.fixture
def serve(cfg, log, host_path):
    peers = []

    def _serve(handler=None):
        if handler is None:
            handler = CGIResponder(cfg, log, [host_path])
        peer = Peer(handler, log)
        peers.append(peer)
        return peer

    yield _serve
    for peer in peers:
        peer.close()


def params(docroot, script_name, **extra):
    p = {
        "DOCUMENT_ROOT": str(docroot),
        "SCRIPT_NAME": script_name,
        "REQUEST_METHOD": "GET",
        "QUERY_STRING": "",
    }
    p.update(extra)
    return p


def test_runs_script_end_to_end(serve, make_script, docroot):
    make_script("hello.cgi", """\
        echo "Content-Type: text/plain"
        echo "X-Method: $REQUEST_METHOD"
        echo
        cat
        """)
    reply = serve().request(
        params(docroot, "/hello.cgi", REQUEST_METHOD="POST"), b"payload")
    assert reply.stdout == (b"Status: 200 OK\r\n"
                            b"Content-Type: text/plain\r\n"
                            b"X-Method: POST\r\n"
                            b"\r\n"
                            b"payload")
    assert reply.app_status == 0
    assert reply.stderr == b""


def test_script_status_is_forwarded(serve, make_script, docroot):
    make_script("missing.cgi", """\
        echo "Status: 404 Not Found"
        echo "Content-Type: text/plain"
        echo
        echo nope
        """)
    reply = serve().request(params(docroot, "/missing.cgi"))
    assert reply.headers == ["Status: 404 Not Found",
                             "Content-Type: text/plain"]
    assert reply.body == b"nope\n"


def test_exit_status_is_app_status(serve, make_script, docroot):
    make_script("fail.cgi", """\
        echo "Content-Type: text/plain"
        echo
        echo partial
        exit 3
        """)
    reply = serve().request(params(docroot, "/fail.cgi"))
    assert reply.body == b"partial\n"
    assert reply.app_status == 3


def test_missing_document_root(serve):
    reply = serve().request({"SCRIPT_NAME": "/hello.cgi"})
    assert reply.headers == [
        "Status: 403 Forbidden",
        "Content-Type: text/plain; charset=utf-8",
        "X-Content-Type-Options: nosniff",
    ]
    assert reply.body == b"missing document root\n"


def test_missing_script_name(serve, docroot):
    reply = serve().request({"DOCUMENT_ROOT": str(docroot)})
    assert reply.headers[0] == "Status: 403 Forbidden"
    assert reply.body == b"missing script name\n"


def test_not_executable(serve, make_script, docroot, log):
    path = make_script("plain.cgi", "echo\n", mode=0o644)
    reply = serve().request(params(docroot, "/plain.cgi"))
    assert reply.headers[0] == "Status: 403 Forbidden"
    assert reply.body == ("script not executable: %s\n" % path).encode()
    assert log.warning.called


def test_malformed_output(serve, make_script, docroot):
    make_script("broken.cgi", "printf 'Content-Type: text/plain'\n")
    reply = serve().request(params(docroot, "/broken.cgi"))
    assert reply.headers[0] == "Status: 502 Bad Gateway"
    assert reply.body == b"Bad Gateway\n"


def test_start_failure(serve, make_script, docroot):
    # executable but not runnable
    make_script("bad.cgi", "", mode=0o755)
    (docroot / "bad.cgi").write_bytes(b"\x7fELF garbage")
    reply = serve().request(params(docroot, "/bad.cgi"))
    assert reply.headers[0] == "Status: 502 Bad Gateway"
    assert reply.body.startswith(b"failed to start CGI")


def test_forward_stderr(cfg, serve, make_script, docroot):
    cfg.set("forward_stderr", True)
    make_script("err.cgi", """\
        echo "something went wrong" >&2
        echo "Content-Type: text/plain"
        echo
        echo ok
        """)
    reply = serve().request(params(docroot, "/err.cgi"))
    assert reply.stderr == b"something went wrong\n"
    assert reply.body == b"ok\n"


def test_request_params_reach_script(serve, make_script, docroot):
    make_script("env.cgi", """\
        echo
        echo "$QUERY_STRING"
        echo "$HTTP_X_TOKEN"
        """)
    reply = serve().request(params(docroot, "/env.cgi",
                                   QUERY_STRING="a=1&b=2",
                                   HTTP_X_TOKEN="secret"))
    assert reply.body == b"a=1&b=2\nsecret\n"


def test_through_dispatcher(cfg, log, host_path, serve, make_script,
                            docroot):
    cfg.set("workers", 2)
    make_script("hello.cgi", """\
        echo "Content-Type: text/plain"
        echo
        echo hello
        """)
    state = make_state(cfg)
    handler = Dispatcher(state, CGIResponder(cfg, log, [host_path]), log)
    reply = serve(handler).request(params(docroot, "/hello.cgi"))
    assert reply.body == b"hello\n"
    assert state.jobs.count == 0
    assert state.tokens.available == 2


def test_non_ascii_params_reach_script_unchanged(serve, make_script, docroot):
    make_script("café.cgi", """\
        echo
        printf '%s|%s' "$HTTP_X_NAME" "$PATH_INFO"
        """)
    reply = serve().request(params(docroot, "/café.cgi",
                                   HTTP_X_NAME="café",
                                   PATH_INFO="/naïve"))
    assert reply.app_status == 0
    assert reply.body == "café|/naïve".encode("utf-8")


def test_nul_byte_in_script_name(serve, docroot):
    reply = serve().request(params(docroot, "/a\0b.cgi"))
    assert reply.headers[0] == "Status: 403 Forbidden"
    assert reply.body.startswith(b"invalid script path")


def test_invalid_header_is_dropped(serve, make_script, docroot, log):
    make_script("odd.cgi", """\
        printf 'Content-Type: text/plain\\r\\nX Bad: 1\\r\\nX-Good: 2\\r\\n\\r\\nHello'
        """)
    reply = serve().request(params(docroot, "/odd.cgi"))
    assert reply.headers == ["Status: 200 OK", "Content-Type: text/plain",
                             "X-Good: 2"]
    assert reply.body == b"Hello"
    assert log.warning.called


def test_host_environment_is_filtered(cfg, log, monkeypatch, serve,
                                      make_script, docroot):
    monkeypatch.setenv("HTTP_FOO", "from-host")
    monkeypatch.setenv("REMOTE_ADDR", "10.9.9.9")
    monkeypatch.setenv("LD_PRELOAD", "/tmp/evil.so")
    monkeypatch.setenv("FCGIWRAP_TEST_KEEP", "kept")
    monkeypatch.setenv("QUERY_STRING", "host-query")
    make_script("env.cgi", """\
        echo
        echo "foo=${HTTP_FOO-unset}"
        echo "addr=${REMOTE_ADDR-unset}"
        echo "preload=${LD_PRELOAD-unset}"
        echo "keep=${FCGIWRAP_TEST_KEEP-unset}"
        echo "query=${QUERY_STRING-unset}"
        """)
    handler = CGIResponder(cfg, log, inherited_environ())
    reply = serve(handler).request(params(docroot, "/env.cgi",
                                          QUERY_STRING="from-request"))
    assert reply.body.decode().splitlines() == [
        "foo=unset",
        "addr=unset",
        "preload=unset",
        "keep=kept",
        "query=from-request",
    ]
