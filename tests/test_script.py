#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import os

import pytest

from fcgiwrap.cgi import errors
from fcgiwrap.cgi.script import (
    Script,
    is_within,
    resolve_script,
    resolve_workdir,
    validate_script,
)


@pytest.fixture
def hello(make_script):
    return make_script("hello.cgi", "echo\n")


def test_validate_relative_path(docroot):
    with pytest.raises(errors.ScriptNotAbsolute) as exc_info:
        validate_script("hello.cgi", str(docroot))
    assert "must be absolute" in str(exc_info.value)


def test_validate_outside_root(make_script, docroot, tmp_path):
    other = make_script("other.cgi", "echo\n", root=tmp_path)
    with pytest.raises(errors.ScriptOutsideDocumentRoot) as exc_info:
        validate_script(str(other), str(docroot))
    assert "outside document root" in str(exc_info.value)


def test_validate_sibling_prefix_is_outside(make_script, docroot, tmp_path):
    other = make_script("a.cgi", "echo\n", root=tmp_path / "www2")
    with pytest.raises(errors.ScriptOutsideDocumentRoot):
        validate_script(str(other), str(docroot))


def test_validate_dotdot_escape(docroot, tmp_path):
    path = os.path.join(str(docroot), "..", "other.cgi")
    with pytest.raises(errors.ScriptOutsideDocumentRoot):
        validate_script(path, str(docroot))


def test_validate_dotdot_back_inside(hello, docroot):
    path = os.path.join(str(docroot), "sub", "..", "hello.cgi")
    assert validate_script(path, str(docroot)) == str(hello)


def test_validate_without_root(hello):
    assert validate_script(str(hello)) == str(hello)


def test_validate_symlink(hello, docroot):
    link = docroot / "link.cgi"
    link.symlink_to(hello)
    with pytest.raises(errors.SymlinkUnsupported) as exc_info:
        validate_script(str(link), str(docroot))
    assert "symlinks unsupported" in str(exc_info.value)


def test_validate_not_regular(docroot):
    (docroot / "dir.cgi").mkdir()
    with pytest.raises(errors.NotRegularFile) as exc_info:
        validate_script(str(docroot / "dir.cgi"), str(docroot))
    assert "not a regular file" in str(exc_info.value)


def test_validate_not_executable(make_script, docroot):
    path = make_script("plain.cgi", "echo\n", mode=0o644)
    with pytest.raises(errors.ScriptNotExecutable) as exc_info:
        validate_script(str(path), str(docroot))
    assert "not executable" in str(exc_info.value)


def test_validate_not_found(docroot):
    with pytest.raises(errors.ScriptNotFound) as exc_info:
        validate_script(str(docroot / "missing.cgi"), str(docroot))
    assert "not found" in str(exc_info.value)


def test_is_within():
    assert is_within("/srv/www", "/srv/www")
    assert is_within("/srv/www/a/b.cgi", "/srv/www/")
    assert is_within("/a.cgi", "/")
    assert not is_within("/srv/www2/a.cgi", "/srv/www")
    assert not is_within("/srv", "/srv/www")


def test_resolve_missing_document_root():
    with pytest.raises(errors.MissingDocumentRoot) as exc_info:
        resolve_script({"SCRIPT_NAME": "/hello.cgi"})
    assert str(exc_info.value) == "missing document root"
    assert exc_info.value.code == 403


def test_resolve_script_filename_requires_document_root(hello):
    with pytest.raises(errors.MissingDocumentRoot):
        resolve_script({"SCRIPT_FILENAME": str(hello), "DOCUMENT_ROOT": ""})


def test_resolve_missing_script_name(docroot):
    with pytest.raises(errors.MissingScriptName) as exc_info:
        resolve_script({"DOCUMENT_ROOT": str(docroot)})
    assert str(exc_info.value) == "missing script name"


def test_resolve_from_script_name(hello, docroot):
    script = resolve_script({
        "DOCUMENT_ROOT": str(docroot),
        "SCRIPT_NAME": "/hello.cgi",
    })
    assert script == Script(str(hello), str(docroot))


def test_resolve_script_filename_wins(make_script, docroot):
    other = make_script("sub/other.cgi", "echo\n")
    script = resolve_script({
        "DOCUMENT_ROOT": str(docroot),
        "SCRIPT_NAME": "/hello.cgi",
        "SCRIPT_FILENAME": str(other),
    })
    assert script.path == str(other)
    assert script.workdir == str(docroot / "sub")


def test_resolve_rejects_traversal(docroot, tmp_path, make_script):
    make_script("secret.cgi", "echo\n", root=tmp_path)
    with pytest.raises(errors.ScriptOutsideDocumentRoot):
        resolve_script({
            "DOCUMENT_ROOT": str(docroot),
            "SCRIPT_NAME": "/../secret.cgi",
        })


def test_workdir_default(hello):
    assert resolve_workdir({}, str(hello)) == os.path.dirname(str(hello))


def test_workdir_dash_keeps_current(hello):
    assert resolve_workdir({"FCGI_CHDIR": "-"}, str(hello)) is None


def test_workdir_explicit(hello, tmp_path):
    assert resolve_workdir({"FCGI_CHDIR": str(tmp_path)},
                           str(hello)) == str(tmp_path)


@pytest.mark.parametrize("chdir", ["relative/dir", "/nonexistent/fcgiwrap"])
def test_workdir_invalid(hello, chdir):
    with pytest.raises(errors.InvalidChdir) as exc_info:
        resolve_workdir({"FCGI_CHDIR": chdir}, str(hello))
    assert str(exc_info.value).startswith("FCGI_CHDIR")


def test_workdir_not_a_directory(hello):
    with pytest.raises(errors.InvalidChdir) as exc_info:
        resolve_workdir({"FCGI_CHDIR": str(hello)}, str(hello))
    assert "is not a directory" in str(exc_info.value)


@pytest.mark.parametrize("key", ["SCRIPT_NAME", "SCRIPT_FILENAME"])
def test_resolve_rejects_nul_byte(docroot, key):
    value = "/a\0b.cgi" if key == "SCRIPT_NAME" else str(docroot) + "/a\0b.cgi"
    with pytest.raises(errors.ScriptError) as exc_info:
        resolve_script({"DOCUMENT_ROOT": str(docroot), key: value})
    assert exc_info.value.code == 403
    assert "invalid script path" in str(exc_info.value)


def test_workdir_nul_byte(hello):
    with pytest.raises(errors.InvalidChdir) as exc_info:
        resolve_workdir({"FCGI_CHDIR": "/tmp/a\0b"}, str(hello))
    assert "is not a valid path" in str(exc_info.value)


def test_resolve_non_ascii_script_name(make_script, docroot):
    path = make_script("café.cgi", "echo\n")
    script = resolve_script({
        "DOCUMENT_ROOT": str(docroot),
        "SCRIPT_NAME": os.fsdecode("/café.cgi".encode("utf-8")),
    })
    assert os.fsencode(script.path) == os.fsencode(str(path))
