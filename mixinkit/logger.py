"""Levelled logging with an optional regular-expression filter."""

from __future__ import annotations

import json
import re
import sys
import time
from dataclasses import dataclass
from typing import Any, Optional, Pattern

ERROR = 1
INFO = 2
VERBOSE = 3
DEBUG = 7

_VERB = re.compile(r"%([-+# 0]*)(\d*)(?:\.(\d+))?([a-zA-Z%])")
_NUMERIC_VERBS = "dxXfeEgG"


@dataclass
class _State:
    level: int = 0
    filter: Optional[Pattern[str]] = None


_state = _State()


def set_level(level: int) -> None:
    """Set the active log level."""
    _state.level = level


def set_filter(pattern: str) -> None:
    """Only let through verbose and debug lines that match ``pattern``.

    An empty pattern leaves the current filter in place. An invalid
    pattern raises :class:`re.error`.
    """
    if not pattern:
        return
    _state.filter = re.compile(pattern)


def _go_value(arg: Any, verb: str) -> str:
    if isinstance(arg, bool):
        return "true" if arg else "false"
    if arg is None:
        return "<nil>"
    if isinstance(arg, (bytes, bytearray)):
        if verb == "s":
            return bytes(arg).decode("utf-8", "replace")
        return "[" + " ".join(str(b) for b in arg) + "]"
    if isinstance(arg, (list, tuple)):
        return "[" + " ".join(_go_value(a, verb) for a in arg) + "]"
    if isinstance(arg, float):
        return format(arg, "g")
    return str(arg)


def _bad_verb(verb: str, arg: Any) -> str:
    return f"%!{verb}({type(arg).__name__}={_go_value(arg, 'v')})"


def _render_numeric(flags: str, width: str, prec: Optional[str], verb: str, arg: Any) -> str:
    spec = ""
    if "-" in flags:
        spec += "<"
    if "+" in flags:
        spec += "+"
    elif " " in flags:
        spec += " "
    if "#" in flags and verb in "xX":
        spec += "#"
    if "0" in flags and "-" not in flags:
        spec += "0"
    spec += width
    if verb in "dxX":
        if isinstance(arg, bool) or not isinstance(arg, int):
            raise TypeError(verb)
        return format(arg, spec + verb)
    if prec:
        spec += "." + prec
    return format(float(arg), spec + verb)


def _render(flags: str, width: str, prec: Optional[str], verb: str, arg: Any) -> str:
    if verb in "xX" and isinstance(arg, (bytes, bytearray, str)):
        raw = arg.encode() if isinstance(arg, str) else bytes(arg)
        text = raw.hex()
        if verb == "X":
            text = text.upper()
    elif verb in _NUMERIC_VERBS:
        try:
            return _render_numeric(flags, width, prec, verb, arg)
        except (TypeError, ValueError):
            return _bad_verb(verb, arg)
    elif verb in "vst":
        text = _go_value(arg, verb)
        if prec and verb in "vs":
            text = text[: int(prec)]
    elif verb == "q":
        text = json.dumps(_go_value(arg, "s"), ensure_ascii=False)
    elif verb == "c" and isinstance(arg, int):
        text = chr(arg)
    else:
        return _bad_verb(verb, arg)
    if width:
        size = int(width)
        text = text.ljust(size) if "-" in flags else text.rjust(size)
    return text


def _sprintf(fmt: str, args: tuple) -> str:
    consumed = 0

    def replace(match: re.Match) -> str:
        nonlocal consumed
        flags, width, prec, verb = match.groups()
        if verb == "%":
            return "%"
        if consumed >= len(args):
            return f"%!{verb}(MISSING)"
        arg = args[consumed]
        consumed += 1
        return _render(flags, width, prec, verb, arg)

    text = _VERB.sub(replace, fmt)
    if consumed < len(args):
        extra = ", ".join(
            f"{type(a).__name__}={_go_value(a, 'v')}" for a in args[consumed:]
        )
        text += f"%!(EXTRA {extra})"
    return text


def _emit(message: str) -> None:
    stamp = time.strftime("%Y/%m/%d %H:%M:%S")
    if not message.endswith("\n"):
        message += "\n"
    sys.stderr.write(f"{stamp} {message}")


def filter_output(fmt: str, *args: Any) -> str:
    """Format the message and return it, or "" if the filter rejects it."""
    out = _sprintf(fmt, args)
    if _state.filter is None or _state.filter.search(out):
        return out
    return ""


def println(*args: Any) -> None:
    """Log the arguments separated by spaces at INFO level."""
    if _state.level >= INFO:
        _emit(" ".join(_go_value(a, "v") for a in args))


def printf(fmt: str, *args: Any) -> None:
    """Log a formatted message at INFO level."""
    if _state.level >= INFO:
        _emit(_sprintf(fmt, args))


def _printf_at_level(level: int, fmt: str, args: tuple) -> None:
    if _state.level < level:
        return
    out = filter_output(fmt, *args)
    if out:
        _emit(out)


def verbosef(fmt: str, *args: Any) -> None:
    """Log a filtered message at VERBOSE level."""
    _printf_at_level(VERBOSE, fmt, args)


def debugf(fmt: str, *args: Any) -> None:
    """Log a filtered message at DEBUG level."""
    _printf_at_level(DEBUG, fmt, args)