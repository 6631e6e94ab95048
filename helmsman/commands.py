"""
Helmsman command layer: wrap callables into typed, token-driven commands.

What this module provides
- Command: wraps a Python callable with a fixed, ordered list of parameter types and
  exposes one uniform entry point, __invoke__(tokens), that:
  • checks the token count against the arity before anything else,
  • converts every token with the converter of its parameter (no short-circuit),
  • aggregates every conversion error into a single ConversionFailure,
  • calls the wrapped callable exactly once when all conversions succeed.
  Faults are returned, never raised: __invoke__ yields None on success.

- Three kinds sharing that contract:
  • FunctionCommand ("function"): plain functions, builtins and bound methods.
  • StaticCommand ("static"): the callback and its converters are baked into a
    sealed generated class with an unrolled __invoke__ trampoline.
  • ClosureCommand ("closure"): nested functions with free variables, partials and
    callable objects; captured state is shared by reference or copied by value.

- command(...): build the right kind for a callable, or return a decorator.

Core ideas
- Signature-driven: parameter annotations are the target types (unannotated means str).
- Build-time checks: every parameter type must have a converter when the command
  is built; variadic and required keyword-only parameters are rejected.
- Stable introspection: the generated __call__ mirrors the callback's positional
  parameters so a command can still be called with already-typed values.

Quick start
    from helmsman import command

    @command
    def add(a: int, b: int):
        print(a + b)

    add.__invoke__(["2", "3"])    # prints 5, returns None
    add.__invoke__(["2", "x"])    # returns ConversionFailure("x is not a int.")
"""
import copy
import functools
import inspect
import re
import textwrap
from collections.abc import Iterable
from inspect import Parameter
from types import CellType, FunctionType

from .converters import lookup
from .faults import *
from .utils import *


@functools.cache
def _invoker(parameters):
    """
    Build and cache a trampoline __call__ for a tuple of positional parameter names.

    Behavior
    - Mirrors the callback's positional parameters as positional-only parameters.
    - Forwards every received argument unchanged to self._callback.

    Notes
    - If a parameter is named 'self', the trampoline uses '__self__' for the instance.
    """
    signature = [self := "self" if "self" not in parameters else "__self__", *parameters]

    if parameters:
        signature.append("/")

    exec(textwrap.dedent(f"""
        @rename("__call__")
        def __call__({", ".join(signature)}):
            return {self}._callback({", ".join(parameters)})
    """), globals(), namespace := {})

    namespace["__call__"].__doc__ = textwrap.dedent(f"""
        Trampoline forwarding ({", ".join(parameters)}) to self._callback.

        Arguments are passed as received; no token conversion happens here.
    """)

    return namespace["__call__"]


@functools.cache
def _specializer(arity):
    """
    Build and cache an unrolled __invoke__ for static commands of a given arity.

    The emitted body converts each position with a fixed index instead of looping,
    and calls the class-level callback directly.
    """
    arguments = ", ".join(f"argument{index}" for index in range(arity))
    source = [
        '@rename("__invoke__")',
        "def __invoke__(self, tokens, /):",
        "    tokens = _tokenize(tokens)",
        f"    if len(tokens) != {arity}:",
        "        return self._mismatch(tokens)",
        "    faults = []",
        *(f"    argument{index} = self._convert({index}, tokens[{index}], faults)" for index in range(arity)),
        "    if faults:",
        "        return self._failure(faults)",
        f"    self._callback({arguments})",
    ]

    exec("\n".join(source), globals(), namespace := {})

    namespace["__invoke__"].__doc__ = f"Unrolled invocation trampoline for arity={arity}."

    return namespace["__invoke__"]


class CommandType(type):
    """
    Metaclass that turns callbacks into callable, introspectable Command classes.

    Responsibilities
    - Inject a trampoline __call__ on factory-backed Command classes that mirrors the
      callback's positional parameters (built via _invoker).
    - For static factories, also bake the callback, the converters and an unrolled
      __invoke__ (built via _specializer) into the class itself.
    - Provide stable __repr__/__rich_repr__ for diagnostics.
    - Expose the names listed in __introspectable__ as read-only properties.
    - Seal factory-backed classes against subclassing.

    Options (metaclass construction-time)
    - factory: the resulting class backs exactly one Command instance.
    - parameters: tuple of positional parameter names (for _invoker).
    - static: bake callback/converters into the class.
    - callback, converters: the values to bake when static.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        if options.get("factory", False):
            namespace["__call__"] = _invoker(options["parameters"])
            namespace["__module__"] = "dynamic-factory::commands"
            if options.get("static", False):
                namespace["__invoke__"] = _specializer(len(options["parameters"]))
                namespace["_callback"] = staticmethod(options["callback"])
                namespace["_converters"] = options["converters"]

        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            """
            Return a concise, stable representation with key metadata.

            Example
            - function-command(name='add', kind='function', types=(<class 'int'>, <class 'int'>), ...)
            """
            return "%s(%s)" % (
                type(self).__typename__,
                ", ".join("%s=%r" % pair for pair in self.__rich_repr__())
            )
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        if options.get("factory", False):
            @rename("__init_subclass__")
            def __init_subclass__(cls, **options):  # NOQA: F-841
                raise TypeError(f"type {self.__name__!r} is not an acceptable base type")
            self.__init_subclass__ = classmethod(__init_subclass__)

        return self


def _tokenize(tokens):
    """
    Normalize an invocation's tokens into a tuple[str, ...].

    A bare string is rejected: iterating it would silently yield characters.
    """
    if isinstance(tokens, str) or not isinstance(tokens, Iterable):
        raise TypeError("__invoke__() argument must be an iterable of strings")
    tokens = tuple(tokens)
    for token in tokens:
        if not isinstance(token, str):
            raise TypeError("__invoke__() argument must be an iterable of strings")
    return tokens


@functools.cache
def _ordinal(number):
    """
    Return a human-friendly ordinal label for a 1-based position.
    """
    try:
        return {
            1: "first",
            2: "second",
            3: "third",
            4: "fourth",
            5: "fifth",
            6: "sixth",
            7: "seventh",
            8: "eighth",
            9: "ninth",
            10: "tenth",
        }[number]
    except KeyError:
        pass

    if 10 < number % 100 < 20:
        return f"{number}th"

    return f'{number}%s' % {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


def _detach(source):
    """
    Return a copy of a callable that owns its captured state.

    - nested functions: rebuilt over fresh cells holding deep copies of the
      captured values (unbound cells stay unbound).
    - other callables (objects, partials): deep-copied.
    """
    if not inspect.isfunction(source):
        return copy.deepcopy(source)
    if not source.__closure__:
        return source

    cells = []
    for cell in source.__closure__:
        try:
            contents = cell.cell_contents
        except ValueError:
            cells.append(CellType())
        else:
            cells.append(CellType(copy.deepcopy(contents)))

    function = FunctionType(
        source.__code__,
        source.__globals__,
        source.__name__,
        source.__defaults__,
        tuple(cells),
    )
    function.__kwdefaults__ = copy.copy(source.__kwdefaults__)
    return functools.update_wrapper(function, source)


def _describe(source):
    """
    First line of the docstring of the code a command actually runs, or None.

    Partials are unwrapped to their function and callable objects are read from
    their __call__. Only the own __doc__ is used: inherited docstrings (the partial
    type, object.__call__) never become a description.
    """
    while isinstance(source, functools.partial):
        source = source.func
    if not inspect.isroutine(source) and not inspect.isclass(source):
        source = getattr(type(source), "__call__", None)
    if not isinstance(doc := getattr(source, "__doc__", None), str):
        return None
    return next(iter(inspect.cleandoc(doc).splitlines()), None) or None


def _process_source(cls, metadata):
    """
    Introspect the callback and derive its ordered parameter names and types.

    Responsibilities
    - Require a callable; read its signature with string annotations evaluated.
    - Keep positional parameters (POSITIONAL_ONLY / POSITIONAL_OR_KEYWORD) in order.
    - Reject *args/**kwargs and keyword-only parameters without defaults.
    - Warn (IgnoredDefaultWarning) about positional defaults: every parameter is required.
    - Apply an explicit 'types' override, checking it against the signature.

    Mutates metadata in place: "parameters" and "types".
    """
    callback = metadata["callback"]
    if not callable(callback):
        raise TypeError(f"{cls.__typename__} 'callback' must be callable")

    try:
        signature = inspect.signature(callback, eval_str=True)
    except ValueError:
        signature = Unset
    except Exception as exception:
        raise TypeError(f"{cls.__typename__} 'callback' annotations cannot be resolved ({exception})") from None

    parameters = []
    annotations = []

    if signature is not Unset:
        for parameter in signature.parameters.values():
            if parameter.kind in (Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD):
                raise TypeError(f"{cls.__typename__} 'callback' cannot take variadic parameters ({parameter})")
            if parameter.kind is Parameter.KEYWORD_ONLY:
                if parameter.default is Parameter.empty:
                    raise TypeError(
                        f"{cls.__typename__} 'callback' keyword-only parameter {parameter.name!r} must have a default"
                    )
                continue
            if parameter.default is not Parameter.empty:
                trigger(IgnoredDefaultWarning(
                    "default of parameter %r is ignored; every parameter is required" % parameter.name,
                    title="ignored default",
                    code=FaultCode.IGNORED_DEFAULT,
                    hint="remove the default or drop the parameter from the command",
                    parameter=parameter.name,
                    docs=getdoc(FaultCode.IGNORED_DEFAULT),
                ))
            parameters.append(parameter.name)
            annotations.append(str if parameter.annotation is Parameter.empty else parameter.annotation)

    if metadata["types"] is Unset:
        if signature is Unset:
            raise TypeError(f"{cls.__typename__} 'callback' is not inspectable; 'types' must be provided")
        metadata["types"] = tuple(annotations)
    else:
        if isinstance(metadata["types"], str) or not isinstance(metadata["types"], Iterable):
            raise TypeError(f"{cls.__typename__} 'types' must be an iterable of types")
        metadata["types"] = tuple(metadata["types"])
        if signature is Unset:
            parameters = ["parameter%d" % index for index in range(len(metadata["types"]))]
        elif len(metadata["types"]) != len(parameters):
            raise TypeError(
                f"{cls.__typename__} 'types' has {len(metadata['types'])} entries "
                f"but the callback takes {len(parameters)} positional parameters"
            )

    metadata["parameters"] = tuple(parameters)


def _process_name(cls, metadata):
    """
    Resolve and validate the command name (defaults to the callback's __name__).

    Names are matched against the first token of a line, so they must be non-empty
    and contain no whitespace. Lambdas and nameless callables need an explicit name.
    """
    name = coalesce(metadata["name"], getattr(metadata["callback"], "__name__", Unset))

    if name is Unset or name == "<lambda>":
        raise ValueError(f"{cls.__typename__} 'callback' has no usable name; 'name' must be provided")
    if not isinstance(name, str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
    elif re.search(r"\s", name):
        raise ValueError(f"{cls.__typename__} 'name' cannot contain whitespace")

    metadata["name"] = name


def _process_types(cls, metadata):
    """
    Resolve one converter per parameter type; unsupported types fail the build.
    """
    converters = []
    for parameter, type in zip(metadata["parameters"], metadata["types"]):
        try:
            converters.append(lookup(type))
        except TypeError as exception:
            raise TypeError(f"{cls.__typename__} parameter {parameter!r}: {exception}") from None
    metadata["converters"] = tuple(converters)


class Command(metaclass=CommandType):
    """
    A callable bound to a fixed list of parameter types, invocable from text tokens.

    Lifecycle
    - Constructed from a callback (directly or through command()); the signature is
      inspected once and converters are resolved once.
    - Each instance is backed by a sealed, factory-generated subclass whose __call__
      mirrors the callback's positional parameters.
    - Instances hold no per-invocation state: __invoke__ is safe to call repeatedly
      and from several threads (captured callback state is the owner's business).

    Constructing Command(...) directly picks the kind the same way command() does.
    """

    __introspectable__ = (
        "name",
        "callback",
        "types",
        "parameters",
        "arity",
        "kind",
        "descr",
    )

    __displayable__ = (
        "name",
        "kind",
        "types",
        "descr",
    )

    _kind = Unset
    _static = False

    def __new__(cls, source, /, name=Unset, *, types=Unset):
        """
        Construct a command for source.

        Parameters
        - source: Callable
          The callback. Positional parameters define the command arguments.
        - name: str | Unset
          Command name; defaults to source.__name__.
        - types: Iterable[type] | Unset
          Explicit parameter types, overriding annotations (required when the
          callback's signature cannot be inspected).

        Raises
        - TypeError/ValueError on non-callables, invalid names, variadic or required
          keyword-only parameters, and parameter types without a converter.
        """
        if cls is Command:
            return _classify(source)(source, name, types=types)

        metadata = {
            "callback": source,
            "name": name,
            "types": types,
        }
        _process_source(cls, metadata)
        _process_name(cls, metadata)
        _process_types(cls, metadata)

        self = super().__new__(type(cls)(
            cls.__name__,
            (cls,),
            {},
            factory=True,
            parameters=metadata["parameters"],
            static=cls._static,
            callback=metadata["callback"],
            converters=metadata["converters"],
        ))
        if not cls._static:
            self._callback = metadata["callback"]
            self._converters = metadata["converters"]
        self._name = metadata["name"]
        self._types = metadata["types"]
        self._parameters = metadata["parameters"]
        self._arity = len(metadata["types"])
        self._descr = _describe(source)
        return self

    @property
    def usage(self):
        """
        One-line usage string, e.g. "add <a:int> <b:int>".
        """
        return " ".join([self._name, *(
            "<%s:%s>" % (parameter, converter.typename)
            for parameter, converter in zip(self._parameters, self._converters)
        )])

    def _convert(self, index, token, faults):
        try:
            return self._converters[index](token)
        except ConversionError as fault:
            parameter = self._parameters[index]
            faults.append(fault.__replace__(
                tool=self,
                position=index + 1,
                parameter=parameter,
                hint="use a valid %s for %r at %s position" % (
                    fault.options["typename"], parameter, _ordinal(index + 1)
                ),
            ))
            return Unset

    def _mismatch(self, tokens):
        expected, got = self._arity, len(tokens)
        return ArityMismatchError(
            "%s expects %d %s but %d %s given" % (
                self._name,
                expected,
                "argument" if expected == 1 else "arguments",
                got,
                "was" if got == 1 else "were",
            ),
            title="arity mismatch",
            code=FaultCode.ARITY_MISMATCH,
            tool=self,
            expected=expected,
            got=got,
            tokens=tokens,
            hint="usage: %s" % self.usage,
            docs=getdoc(FaultCode.ARITY_MISMATCH),
        )

    def _failure(self, faults):
        return ConversionFailure(
            faults,
            title="conversion failure",
            code=FaultCode.CONVERSION_FAILURE,
            tool=self,
            hint="usage: %s" % self.usage,
            docs=getdoc(FaultCode.CONVERSION_FAILURE),
        )

    def __invoke__(self, tokens, /):
        """
        Run the command from tokens (the command name already stripped).

        Returns
        - None when the callback was invoked.
        - ArityMismatchError when len(tokens) differs from the arity (no conversion tried).
        - ConversionFailure grouping every failing token (callback not invoked).

        Raises
        - TypeError when tokens is not an iterable of strings.
        - Whatever the callback itself raises.
        """
        tokens = _tokenize(tokens)
        if len(tokens) != self._arity:
            return self._mismatch(tokens)

        faults = []
        arguments = [self._convert(index, token, faults) for index, token in enumerate(tokens)]
        if faults:
            return self._failure(faults)

        self._callback(*arguments)


class FunctionCommand(Command):
    """
    Command over a plain function, builtin or bound method (held by reference).
    """
    _kind = "function"


class StaticCommand(Command):
    """
    Command over a function known at build time.

    The callback and its converters live on the sealed factory class, and __invoke__
    is an unrolled trampoline specialized for the arity.
    """
    _kind = "static"
    _static = True

    def __new__(cls, source, /, name=Unset, *, types=Unset):
        if not inspect.isroutine(source):
            raise TypeError(f"{cls.__typename__} 'callback' must be a function")
        return super().__new__(cls, source, name, types=types)


class ClosureCommand(Command):
    """
    Command over a callable carrying state: closures, partials, callable objects.

    capture
    - "reference" (default): the command shares the captured state with its owner;
      the owner must keep it alive and synchronized.
    - "value": the command owns a private copy of the state taken at build time.
    """
    _kind = "closure"

    __introspectable__ = Command.__introspectable__ + ("capture",)

    def __new__(cls, source, /, name=Unset, *, types=Unset, capture="reference"):
        if capture not in ("reference", "value"):
            raise ValueError(f"{cls.__typename__} 'capture' must be 'reference' or 'value'")
        if not callable(source):
            raise TypeError(f"{cls.__typename__} 'callback' must be callable")
        self = super().__new__(
            cls,
            _detach(source) if capture == "value" else source,
            name,
            types=types,
        )
        self._capture = capture
        return self


def _classify(source, /, *, static=False, capture=Unset):
    """
    Pick the Command kind for a callable.

    - static=True → StaticCommand
    - explicit capture, nested function with free variables, or any other callable
      object (partial, instance with __call__) → ClosureCommand
    - functions, builtins, methods → FunctionCommand
    """
    if static:
        if capture is not Unset:
            raise TypeError("command() cannot combine 'static' and 'capture'")
        return StaticCommand
    if capture is not Unset:
        return functools.partial(ClosureCommand, capture=capture)
    if inspect.isfunction(source) and source.__closure__:
        return ClosureCommand
    if inspect.isroutine(source):
        return FunctionCommand
    if callable(source):
        return ClosureCommand
    raise TypeError("command() argument must be callable")


def command(source=Unset, /, name=Unset, *, types=Unset, static=False, capture=Unset):
    """
    Create a Command or return a decorator to build it later.

    Invocation modes
    - Direct:
        count = command(lambda n: ..., "count", types=(int,))
    - Decorator:
        @command
        def add(a: int, b: int): ...

        @command("sum", static=True)
        def add(a: int, b: int): ...

    Parameters
    - source: Unset | str | Callable
      When Unset (or a str, taken as the name), a decorator is returned.
    - name, types: forwarded to the Command constructor.
    - static: build a StaticCommand.
    - capture: "reference" | "value"; forces a ClosureCommand.

    Returns
    - Command | Callable[[Callable], Command]
    """
    if isinstance(source, str):
        if name is not Unset:
            raise TypeError("command() got the name twice")
        source, name = Unset, source

    @rename("command")
    def wrapper(source, /):
        if not callable(source):
            raise TypeError("@command() must be applied to a callable")
        return _classify(source, static=static, capture=capture)(source, name, types=types)

    return wrapper(source) if source is not Unset else wrapper


__all__ = (
    "Command",
    "FunctionCommand",
    "StaticCommand",
    "ClosureCommand",
    "command",
)

# Remove the internal metaclass from the module namespace; not part of the public API.
del CommandType
