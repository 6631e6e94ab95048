"""
Helmsman faults (errors and warnings) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing issue.
- CommandException / CommandWarning: base types that carry a message plus options
  and know how to render themselves with rich.
- ConversionFailure: the aggregated error for one invocation attempt; it groups
  every ConversionError in parameter order.
- trigger(): surface a fault (raise outside shell mode, render in shell mode).
- getdoc(): optional description lookup for a code from the host application.

Faults as values
- Dispatchers and commands never raise for bad user input. They build a fault and
  return it; the caller decides whether to trigger it, render it, or drop it.
- Build-time contract violations (unsupported parameter types, duplicate names)
  are plain TypeError/ValueError raised by the constructors, never faults.

Integration
- The host may customize rendering through __main__ hooks:
  __styles__ (style overrides), __codes__ (code labels), __docs__ (code docs)
  and __prog__ (program name shown in headers).
"""
import inspect
import sys
import warnings
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the dispatcher (stable identifiers).

    grouping (by high-level domain)
    - routing (211xx)
      • UNKNOWN_COMMAND
    - arity (2111x)
      • ARITY_MISMATCH
    - conversion (2112x)
      • CONVERSION_ERROR (one token), CONVERSION_FAILURE (aggregate)
    - warnings (22xxx)
      • IGNORED_DEFAULT
    """
    # --- routing errors (21xxx) ---
    UNKNOWN_COMMAND             = 21101

    # --- arity errors (21xxx) ---
    ARITY_MISMATCH              = 21111

    # --- conversion errors (21xxx) ---
    CONVERSION_ERROR            = 21121
    CONVERSION_FAILURE          = 21122

    # --- warnings (22xxx) ---
    IGNORED_DEFAULT             = 22111

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels.
        """
        return str(getattr(sys.modules["__main__"], "__codes__", {}).get(self, self.value))


def _styles(defaults):
    return defaultdict(str, defaults | getattr(sys.modules["__main__"], "__styles__", {}))


def _prog(options):
    main = sys.modules["__main__"]
    if hasattr(main, "__prog__"):
        return main.__prog__
    return getattr(options.get("tool"), "name", None) or "helmsman"


def _render(fault, title, body, styles, colorful, fancy):
    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), style)

    def styler(style):
        return styles[style] if colorful else ""

    code = fault.options.get("code")
    header = Text.assemble(
        "[ ",
        text(_prog(fault.options), styler("prog-name")),
        " | ",
        text(code.normalize() if code else "", styler("code")),
        " | ",
        text(title.title(), styler("title")),
        " ]"
    )
    lines = [text(line, styler("message")) for line in body]
    if hint := fault.options.get("hint"):
        lines.append(Text.assemble(text(" → ", styler("hint-arrow")), text(hint, styler("hint"))))

    if fancy:
        return Panel(Group(*lines), title=header, title_align="left")
    return Group(header, *lines)


class CommandException(Exception):
    """
    base type of every runtime fault returned by commands and dispatchers.

    - message: the single display string (e.g., "Unknown command: frobnicate").
    - options: read-only mapping with title, code, hint and a fault-specific payload;
      rendering flags (shell, fancy, colorful) are merged in by trigger().
    """

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __getattr__(self, name):
        # Expose payload options (token, position, expected, got...) as attributes.
        try:
            return self.__dict__["options"][name]
        except KeyError:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}") from None

    def __rich__(self):
        styles = _styles({
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "title": "bold #FF4DA6",
            "message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        })
        return _render(
            self,
            self.options.get("title", "error"),
            self.message.splitlines(),
            styles,
            self.options.get("colorful", False),
            self.options.get("fancy", False),
        )

    def __trigger__(self):
        if not self.options.get("shell"):
            raise self from None
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})

    def __eq__(self, other):
        if not isinstance(other, CommandException):
            return NotImplemented
        return type(self) is type(other) and self.message == other.message

    def __hash__(self):
        return hash((type(self), self.message))


class UnknownCommandError(CommandException): ...
class ArityMismatchError(CommandException): ...
class ConversionError(CommandException): ...


class ConversionFailure(ExceptionGroup[ConversionError]):
    """
    aggregated conversion error: every failing argument of one invocation attempt.

    the message is the per-argument messages joined by newlines, in parameter order.
    """

    def __new__(cls, exceptions, /, **options):
        exceptions = tuple(exceptions)
        return super().__new__(cls, "\n".join(exception.message for exception in exceptions), exceptions)

    def __init__(self, exceptions, /, **options):
        exceptions = tuple(exceptions)
        super().__init__("\n".join(exception.message for exception in exceptions), exceptions)
        self.options = MappingProxyType(options)

    def derive(self, exceptions):
        return type(self)(exceptions, **self.options)

    def __str__(self):
        return self.message

    def __rich__(self):
        styles = _styles({
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "title": "bold #FF4DA6",
            "message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        })
        return _render(
            self,
            self.options.get("title", "conversion failure"),
            [exception.message for exception in self.exceptions],
            styles,
            self.options.get("colorful", False),
            self.options.get("fancy", False),
        )

    def __trigger__(self):
        if not self.options.get("shell"):
            raise self from None
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.exceptions, **{**self.options, **overrides})

    def __eq__(self, other):
        if not isinstance(other, ConversionFailure):
            return NotImplemented
        return self.exceptions == other.exceptions

    def __hash__(self):
        return hash(self.exceptions)


class CommandWarning(Warning):
    """
    base type of build-time advisories (never returned by dispatch).
    """

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __rich__(self):
        styles = _styles({
            "prog-name": "bold #E6E6F0",
            "code": "bold #FFB400",
            "title": "bold #FFC2E0",
            "message": "#D6D6DE",
            "hint-arrow": "#B8EFAF dim",
            "hint": "italic #B8EFAF",
        })
        return _render(
            self,
            self.options.get("title", "warning"),
            self.message.splitlines(),
            styles,
            self.options.get("colorful", False),
            self.options.get("fancy", False),
        )

    def __trigger__(self):
        if not self.options.get("shell"):
            return warnings.warn(self, stacklevel=len(inspect.stack()))
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class IgnoredDefaultWarning(CommandWarning): ...


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see base classes).
    - options are merged into the fault via __replace__(**options) before triggering.
    - in shell mode, rendering happens via the rich console; otherwise exceptions are
      raised and warnings are emitted through the warnings module.

    typical options
    - tool, shell, fancy, colorful.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys
    are FaultCode instances and values are short documentation strings.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    return getattr(sys.modules["__main__"], "__docs__", {}).get(code)


__all__ = (
    "FaultCode",
    "CommandException",
    "UnknownCommandError",
    "ArityMismatchError",
    "ConversionError",
    "ConversionFailure",
    "CommandWarning",
    "IgnoredDefaultWarning",
    "trigger",
    "getdoc",
)
