#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

import collections
import os
import stat

from fcgiwrap.cgi.errors import (
    InvalidChdir,
    MissingDocumentRoot,
    MissingScriptName,
    NotRegularFile,
    ScriptError,
    ScriptNotAbsolute,
    ScriptNotExecutable,
    ScriptNotFound,
    ScriptOutsideDocumentRoot,
    SymlinkUnsupported,
)

Script = collections.namedtuple("Script", ["path", "workdir"])


def is_within(path, root):
    """True if ``path`` is ``root`` or lies below it, compared lexically."""
    root = os.path.normpath(root)
    path = os.path.normpath(path)
    if path == root:
        return True
    return path.startswith(root.rstrip(os.sep) + os.sep)


def validate_script(path, document_root=""):
    """Check that ``path`` names an executable regular file.

    The path is normalized lexically, symlinks are never followed. When a
    document root is given the script must be located inside it.

    Returns the normalized path.
    """
    if not os.path.isabs(path):
        raise ScriptNotAbsolute(path)

    path = os.path.normpath(path)

    if document_root and not is_within(path, document_root):
        raise ScriptOutsideDocumentRoot(path, document_root)

    try:
        st = os.lstat(path)
    except FileNotFoundError:
        raise ScriptNotFound(path)
    except OSError as e:
        raise ScriptError(path, "failed to lstat script (%s)" % e.strerror)
    except ValueError as e:
        # embedded NUL byte
        raise ScriptError(path, "invalid script path (%s)" % e)

    if stat.S_ISLNK(st.st_mode):
        raise SymlinkUnsupported(path)
    if not stat.S_ISREG(st.st_mode):
        raise NotRegularFile(path)
    if not st.st_mode & 0o111:
        raise ScriptNotExecutable(path)
    return path


def resolve_workdir(params, script_path):
    """Working directory of the script.

    ``FCGI_CHDIR`` names it explicitly, ``-`` keeps the directory of this
    process. Without it scripts run in their own directory.
    """
    if "FCGI_CHDIR" not in params:
        return os.path.dirname(script_path)

    workdir = params["FCGI_CHDIR"]
    if workdir == "-":
        return None
    if not os.path.isabs(workdir):
        raise InvalidChdir(workdir, "must be absolute")
    try:
        st = os.stat(workdir)
    except OSError as e:
        raise InvalidChdir(workdir, "stat failed (%s)" % e.strerror)
    except ValueError as e:
        raise InvalidChdir(workdir, "is not a valid path (%s)" % e)
    if not stat.S_ISDIR(st.st_mode):
        raise InvalidChdir(workdir, "is not a directory")
    return workdir


def resolve_script(params):
    """Find and check the script a request asks for.

    ``SCRIPT_FILENAME`` wins when set, otherwise ``SCRIPT_NAME`` is looked
    up below ``DOCUMENT_ROOT``. Nothing is executed here.
    """
    document_root = params.get("DOCUMENT_ROOT", "")
    if not document_root:
        raise MissingDocumentRoot()

    path = params.get("SCRIPT_FILENAME", "")
    if not path:
        script_name = params.get("SCRIPT_NAME", "")
        if not script_name:
            raise MissingScriptName()
        path = os.path.join(document_root, script_name.lstrip("/"))

    path = validate_script(path, document_root)
    return Script(path, resolve_workdir(params, path))
