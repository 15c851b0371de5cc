"""Command line sanitizer

Turns the raw payload of an ``exec`` request into an argument list. No shell
is ever invoked, so quoting is not interpreted: splitting is whitespace only
and multi-word quoted arguments stay split.
"""

from typing import List, Union

GIT_PREFIX = "git"
LEADING_TRIM = "'()"


def clean_command(line: str) -> str:
    """Drop everything before the first literal ``git``.

    Normalizes client wrappers such as ``proxycommand; git ...``. This is not
    an access control check.
    """
    i = line.find(GIT_PREFIX)
    if i == -1:
        return line
    return line[i:]


def _printable(token: str) -> str:
    return "".join(ch for ch in token if ch.isprintable())


def sanitize_command(raw: Union[str, bytes]) -> List[str]:
    """Raw command line -> argument list.

    Callers must handle the empty list before looking at the first token.
    """
    if isinstance(raw, bytes):
        # undecodable bytes become surrogates, which are not printable
        raw = raw.decode("utf-8", errors="surrogateescape")

    line = clean_command(raw).lstrip(LEADING_TRIM)
    tokens = (_printable(part) for part in line.split())
    return [token for token in tokens if token]
