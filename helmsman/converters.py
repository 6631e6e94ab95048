r"""
Helmsman token converters.

Overview
- Converter: a stateless, callable conversion rule from one text token to one
  target type. Calling it returns the converted value or raises ConversionError.
- lookup(type): resolve the Converter for a target type. Commands call it for
  every parameter when they are built, so an unsupported type is rejected with
  TypeError long before any input is dispatched.
- converter(type, name=...): decorator registering a custom conversion rule.
- convert(token, type): one-shot shortcut for lookup(type)(token).

Built-in rules
- str: the token is accepted verbatim (the empty token included).
- int, float, complex, Decimal, Fraction: the type's own constructor parses the
  token; empty tokens, surrounding whitespace, digit-group underscores and
  non-ASCII digits are rejected.
- bool: "true"/"false"/"1"/"0", case-insensitive.
- Enum subclasses: resolved by member name.

Lookup order
- exact type → Enum subclass rule → nearest registered base class in the MRO.
  Bases registered through their constructor (str, int...) build the subclass
  itself, so a str subclass parameter receives an instance of that subclass.

Messages
- A failing token yields exactly one ConversionError with the message
  "<token> is not a <type-name>." (an empty token is shown as "").

Quick example:
    >>> from helmsman.converters import converter, convert
    >>> @converter(Path, name="path")
    ... def _(token):
    ...     return Path(token).expanduser()
    ...
    >>> convert("42", int)
    42
"""
import builtins
import enum
import functools
from decimal import Decimal
from fractions import Fraction

from .faults import ConversionError, FaultCode, getdoc
from .utils import *

# Registered conversion rules keyed by their exact target type.
_converters = {}


class Converter:
    """
    Conversion rule for one target type.

    Properties
    - type: the target type.
    - typename: label used in messages ("int", "float", the enum class name...).
    - function: the parsing callable, or None when the type's constructor is used.
    - strict: accept only plain ASCII literals (no surrounding whitespace, no "_").
    """

    __slots__ = ("_type", "_typename", "_function", "_strict")

    type = mirror("type")
    typename = mirror("typename")
    function = mirror("function")
    strict = mirror("strict")

    def __init__(self, type, function=None, /, name=Unset, *, strict=False):
        if not isinstance(type, builtins.type):
            raise TypeError("Converter 'type' must be a class")
        if function is not None and not callable(function):
            raise TypeError("Converter 'function' must be callable")
        if not isinstance(name := coalesce(name, type.__name__), str):
            raise TypeError("Converter 'name' must be a string")
        elif not (name := name.strip()):
            raise ValueError("Converter 'name' cannot be empty")
        self._type = type
        self._typename = name
        self._function = function
        self._strict = bool(strict)

    def __call__(self, token, /):
        """
        Convert one token, raising ConversionError when it cannot become the target type.
        """
        if not isinstance(token, str):
            raise TypeError("converter argument must be a string")
        try:
            if self._strict and (not token or token != token.strip() or not token.isascii() or "_" in token):
                raise ValueError("not a plain ASCII base-10 literal")
            return (self._function or self._type)(token)
        except Exception as exception:
            raise ConversionError(
                "%s is not a %s." % (token or '""', self._typename),
                title="conversion error",
                code=FaultCode.CONVERSION_ERROR,
                token=token,
                typename=self._typename,
                exception=exception,
                docs=getdoc(FaultCode.CONVERSION_ERROR),
            ) from exception

    def __repr__(self):
        return f"converter(type={self._type.__qualname__}, typename={self._typename!r})"


def _member(type, token, /):
    return type[token]


def _boolean(token, /):
    match token.lower():
        case "true" | "1":
            return True
        case "false" | "0":
            return False
    raise ValueError("not a boolean literal")


def register(type, function=None, /, name=Unset, *, strict=False):
    """
    Register a conversion rule for an exact target type.

    Raises
    - TypeError: when type is not a class or function is not callable.
    - ValueError: when a rule is already registered for type (conflicting rules
      are a programming error, not something resolved at dispatch time).
    """
    rule = Converter(type, function, name, strict=strict)
    if _converters.setdefault(type, rule) is not rule:
        raise ValueError(f"a converter for {type.__qualname__!r} is already registered")
    return rule


def converter(type, /, name=Unset):
    """
    Decorator registering function(token) -> value as the rule for type.

    Any exception raised by the function is reported as a ConversionError for
    the offending token.
    """
    @rename("converter")
    def wrapper(function, /):
        if not callable(function):
            raise TypeError("@converter() must be applied to a callable")
        register(type, function, name)
        return function
    return wrapper


def lookup(type, /):
    """
    Resolve the Converter for a target type.

    Raises
    - TypeError: no rule is registered for type (nor for an Enum/base class of it).
    """
    try:
        return _converters[type]
    except (KeyError, TypeError):
        pass

    if not isinstance(type, builtins.type):
        raise TypeError(f"no converter registered for {type!r}")

    if issubclass(type, enum.Enum):
        return Converter(type, functools.partial(_member, type))

    for base in type.__mro__[1:]:
        if (rule := _converters.get(base)) is not None:
            return Converter(type, rule.function, strict=rule.strict)

    raise TypeError(f"no converter registered for {type.__qualname__!r}")


def supports(type, /):
    """
    Return True when lookup(type) would succeed.
    """
    try:
        lookup(type)
    except TypeError:
        return False
    return True


def convert(token, type, /):
    """
    Convert token to type (lookup(type)(token)).
    """
    return lookup(type)(token)


register(str)
register(bool, _boolean)
register(int, strict=True)
register(float, strict=True)
register(complex, strict=True)
register(Decimal, strict=True)
register(Fraction, strict=True)


__all__ = (
    "Converter",
    "register",
    "converter",
    "lookup",
    "supports",
    "convert",
)
