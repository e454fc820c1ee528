"""Render an argument vector as a single shell command string.

The host executes the command through a shell, so every token must survive
that shell's own word splitting unchanged. Two dialects are supported:

* POSIX ``sh``: a conservative allowlist, everything else single-quoted.
* Windows: the ``CommandLineToArgvW`` / MSVC runtime convention.

:func:`format_command` is a pure function of ``(argv, target_shell)``;
:func:`detect_target_shell` picks the dialect for the current host.
"""

from __future__ import annotations

import platform
import re
from collections.abc import Sequence
from enum import StrEnum


class TargetShell(StrEnum):
    POSIX = "posix"
    WINDOWS = "windows"


_SAFE_POSIX_RE = re.compile(r"^[A-Za-z0-9_.,/:@+=-]+$")
_WINDOWS_NEEDS_QUOTES_RE = re.compile(r'[\s"]')


def detect_target_shell() -> TargetShell:
    """Return the shell dialect of the host OS."""
    if platform.system().lower() == "windows":
        return TargetShell.WINDOWS
    return TargetShell.POSIX


# -- POSIX -------------------------------------------------------------------


def is_safe_posix_word(value: str) -> bool:
    return bool(_SAFE_POSIX_RE.match(value))


def quote_posix(value: str) -> str:
    if not value:
        return "''"
    # close ', escaped ', reopen
    return "'" + value.replace("'", "'\\''") + "'"


def format_posix(argv: Sequence[str]) -> str:
    return " ".join(a if is_safe_posix_word(a) else quote_posix(a) for a in argv)


# -- Windows -----------------------------------------------------------------


def quote_windows(arg: str) -> str:
    """Quote one argument for ``CommandLineToArgvW``.

    Backslashes are literal unless they precede a double quote, so a run of
    backslashes is doubled only in front of an embedded ``"`` (which then gets
    one more backslash) or in front of the closing quote.
    """
    if not arg:
        return '""'
    if not _WINDOWS_NEEDS_QUOTES_RE.search(arg):
        return arg

    out = ['"']
    backslashes = 0
    for ch in arg:
        if ch == "\\":
            backslashes += 1
            continue
        if ch == '"':
            out.append("\\" * (backslashes * 2 + 1))
            out.append('"')
        else:
            out.append("\\" * backslashes)
            out.append(ch)
        backslashes = 0

    out.append("\\" * (backslashes * 2))
    out.append('"')
    return "".join(out)


def format_windows(argv: Sequence[str]) -> str:
    return " ".join(quote_windows(a) for a in argv)


def format_command(argv: Sequence[str], target_shell: TargetShell | str) -> str:
    """Join *argv* into one command string for *target_shell*."""
    if TargetShell(target_shell) is TargetShell.WINDOWS:
        return format_windows(argv)
    return format_posix(argv)
