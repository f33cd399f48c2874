#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

from fcgiwrap import util
from fcgiwrap.cgi.errors import MalformedResponse

MAX_HEADER_LINE = 8190


def read_headers(stream):
    """Read the header block a CGI script prints before its body.

    Returns a list of ``(name, value)`` tuples in output order, repeated
    names included. Lines without a colon are skipped, the first empty
    line ends the block and the stream is left at the first body byte.
    """
    headers = []
    while True:
        try:
            line = stream.readline(MAX_HEADER_LINE + 1)
        except (OSError, ValueError) as e:
            raise MalformedResponse("error reading headers: %s" % e)

        if not line.endswith(b"\n"):
            if len(line) > MAX_HEADER_LINE:
                raise MalformedResponse("header line too long")
            raise MalformedResponse("unexpected end of headers")

        line = line.rstrip(b"\r\n").decode("latin-1")
        if not line:
            break

        if ":" not in line:
            continue
        name, value = line.split(":", 1)
        headers.append((name.strip(), value.strip()))
    return headers


def iter_body(stream, chunk_size=util.CHUNK_SIZE):
    """Yield the rest of the script output as it becomes available."""
    while True:
        data = stream.read1(chunk_size)
        if not data:
            return
        yield data
