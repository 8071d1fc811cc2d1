"""Terminal text helpers: colours, prompts, formatted output and comparisons."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

RED_CODE = "\x1b[31m"
GREEN_CODE = "\x1b[32m"
YELLOW_CODE = "\x1b[33m"
BLUE_CODE = "\x1b[34m"
MAGENTA_CODE = "\x1b[35m"
CYAN_CODE = "\x1b[36m"
BOLD_CODE = "\x1b[1m"
RESET_CODE = "\x1b[0m"

_ARROW = "==>"
_SMALL_ARROW = " ->"
_OP_SYMBOL = "::"

_KEY_LENGTH = 18
_DELIM_COUNT = 2
_INPUT_BUFFER_SIZE = 4096
_UINT64_MASK = (1 << 64) - 1

_use_color = True
_cached_column_count = -1


class InputOverflowError(Exception):
    """Raised when a line of user input is longer than the read buffer."""

    def __init__(self) -> None:
        super().__init__("input too long")


def set_use_color(enabled: bool) -> None:
    """Turn colour output on or off for every helper in this module."""
    global _use_color
    _use_color = bool(enabled)


def _stylize(start_code: str, s: str) -> str:
    return f"{start_code}{s}{RESET_CODE}" if _use_color else s


def red(s: str) -> str:
    return _stylize(RED_CODE, s)


def green(s: str) -> str:
    return _stylize(GREEN_CODE, s)


def _yellow(s: str) -> str:
    return _stylize(YELLOW_CODE, s)


def cyan(s: str) -> str:
    return _stylize(CYAN_CODE, s)


def magenta(s: str) -> str:
    return _stylize(MAGENTA_CODE, s)


def blue(s: str) -> str:
    return _stylize(BLUE_CODE, s)


def bold(s: str) -> str:
    return _stylize(BOLD_CODE, s)


def color_hash(name: str) -> str:
    """Colour text by a hash of it, so equal text always gets the same colour."""
    if not _use_color:
        return name
    value = 5381
    for byte in name.encode("utf-8"):
        value = (byte + (value << 5) + value) & _UINT64_MASK
    return f"\x1b[{value % 6 + 31}m{name}\x1b[0m"


def _to_float32(value: float) -> float:
    import struct

    return struct.unpack("f", struct.pack("f", value))[0]


def human(size: int) -> str:
    """Return a byte count in human readable binary units."""
    float_size = _to_float32(float(size))
    for unit in ("", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei", "Zi", "Yi"):
        if float_size < 1024:
            return f"{float_size:.1f} {unit}B"
        float_size = _to_float32(float_size / 1024)
    return f"{size}B"


def _sprint(args: Sequence[Any]) -> str:
    parts: list[str] = []
    previous: Any = None
    for index, arg in enumerate(args):
        if index > 0 and not isinstance(arg, str) and not isinstance(previous, str):
            parts.append(" ")
        parts.append(str(arg))
        previous = arg
    return "".join(parts)


def _sprintln(args: Iterable[Any]) -> str:
    return " ".join(str(arg) for arg in args) + "\n"


def sprint_operation_info(*args: Any) -> str:
    return _sprint([bold(cyan(_OP_SYMBOL + " ")), BOLD_CODE, *args]) + RESET_CODE


def operation_info(*args: Any, newline: bool = True) -> None:
    """Print an operation header line (":: ...") to standard output."""
    out = sprint_operation_info(*args)
    sys.stdout.write(out + "\n" if newline else out)


def info(*args: Any, newline: bool = True) -> None:
    """Print an informational message ("==> ...") to standard output."""
    if newline:
        sys.stdout.write(_sprintln([bold(green(_ARROW)), *args]))
    else:
        sys.stdout.write(_sprint([bold(green(_ARROW + " ")), *args]))


def sprint_warn(*args: Any) -> str:
    return _sprint([bold(_yellow(_SMALL_ARROW + " ")), *args])


def warn(*args: Any, newline: bool = True) -> None:
    """Print a warning (" -> ...") to standard output."""
    if newline:
        sys.stdout.write(_sprintln([bold(_yellow(_SMALL_ARROW)), *args]))
    else:
        sys.stdout.write(sprint_warn(*args))


def sprint_error(*args: Any) -> str:
    return _sprint([bold(red(_SMALL_ARROW + " ")), *args])


def error(*args: Any, newline: bool = True) -> None:
    """Print an error (" -> ...") to standard error."""
    if newline:
        sys.stderr.write(_sprintln([bold(red(_SMALL_ARROW)), *args]))
    else:
        sys.stderr.write(sprint_error(*args))


def get_input(default_value: str, no_confirm: bool) -> str:
    """Read one line of user input, or use the default when one is given."""
    info(newline=False)
    if default_value or no_confirm:
        sys.stdout.write(default_value + "\n")
        return default_value
    sys.stdout.flush()
    line = sys.stdin.readline()
    if not line:
        raise EOFError("no input available")
    line = line.rstrip("\n").rstrip("\r")
    if len(line.encode("utf-8")) >= _INPUT_BUFFER_SIZE:
        raise InputOverflowError()
    return line


def _get_column_count() -> int:
    global _cached_column_count
    if _cached_column_count > 0:
        return _cached_column_count
    try:
        _cached_column_count = int(os.environ.get("COLUMNS", ""))
        return _cached_column_count
    except ValueError:
        pass
    try:
        _cached_column_count = os.get_terminal_size(sys.stdout.fileno()).columns
        return _cached_column_count
    except (OSError, ValueError, AttributeError):
        return 80


def print_info_value(key: str, *args: str) -> None:
    """Print a "key : values" line, wrapping values to the terminal width."""
    line = bold(f"{key:<16}: ")
    if not args or (len(args) == 1 and args[0] == ""):
        sys.stdout.write(f"{line}None\n")
        return

    max_cols = _get_column_count()
    cols = _KEY_LENGTH + len(args[0].encode("utf-8"))
    line += args[0]

    for value in args[1:]:
        width = len(value.encode("utf-8"))
        if max_cols > _KEY_LENGTH and cols + width + _DELIM_COUNT >= max_cols:
            cols = _KEY_LENGTH
            line += "\n" + " " * _KEY_LENGTH
        elif cols != _KEY_LENGTH:
            line += " " * _DELIM_COUNT
            cols += _DELIM_COUNT
        line += value
        cols += width

    sys.stdout.write(line + "\n")


def split_db_from_name(pkg: str) -> tuple[str, str]:
    """Split "db/package" into ("db", "package"); no slash gives an empty db."""
    db, sep, name = pkg.partition("/")
    if sep:
        return db, name
    return "", pkg


def less_runes(first: Sequence[str] | None, second: Sequence[str] | None) -> bool:
    """Case-insensitive lexicographic comparison, ties broken by exact character."""
    first = first or ()
    second = second or ()
    for left, right in zip(first, second):
        lower_left, lower_right = left.lower(), right.lower()
        if lower_left != lower_right:
            return lower_left < lower_right
        if left != right:
            return left < right
    return len(first) < len(second)


def continue_task(question: str, cont: bool, no_confirm: bool) -> bool:
    """Ask a yes/no question; `cont` is the answer used when none is given."""
    if no_confirm:
        return cont

    yes, no = "yes", "no"
    y, n = yes[0], no[0]
    postfix = f" [{y.upper()}/{n}] " if cont else f" [{y}/{n.upper()}] "

    info(bold(question), bold(postfix), newline=False)
    sys.stdout.flush()

    line = sys.stdin.readline()
    tokens = line.split()
    if not line or len(tokens) != 1:
        return cont

    response = tokens[0].lower()
    return response in (yes, y)


def _local_time(timestamp: int) -> datetime:
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).astimezone()


def format_time(timestamp: int) -> str:
    """Format a unix timestamp as an ISO 8601 date (yyyy-mm-dd) in local time."""
    return _local_time(timestamp).strftime("%Y-%m-%d")


def format_time_query(timestamp: int) -> str:
    """Format a unix timestamp like "Mon 02 Jan 2006 03:04:05 PM MST"."""
    return _local_time(timestamp).strftime("%a %d %b %Y %I:%M:%S %p %Z")