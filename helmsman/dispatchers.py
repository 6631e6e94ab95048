"""
Helmsman dispatch layer: route text lines to named commands.

What this module provides
- Dispatcher: an immutable table of named commands built once from a fixed list of
  entries. It splits a line into tokens, resolves the first token as the command
  name and forwards the remaining tokens to that command's __invoke__.
  • dispatch(prompt) returns None on success or the fault describing the failure
    (UnknownCommandError, ArityMismatchError, ConversionFailure).
  • calling the dispatcher is a convenience sink: faults go to a fallback that
    receives the message, or are triggered (raised, or rendered in shell mode).
- invoke(object, prompt): run a Dispatcher, a Command or a plain callable and
  trigger any fault.

Entries
- a Command: registered under its own name.
- a callable: wrapped with command() and registered under its __name__.
- a (name, source) pair: registered under name; source is a Command or a callable.

Tokenization
- separator=" " (default): naive split on single spaces; consecutive spaces yield
  empty tokens, which then fail numeric conversion or count towards the arity.
- separator=None: runs of whitespace collapse; a blank line is a single empty
  command name.
- any other non-empty string: split on it verbatim.

Quick start
    from helmsman import Dispatcher

    def add(a: int, b: int):
        print(a + b)

    dispatcher = Dispatcher(add, ("q", lambda: None))
    dispatcher.dispatch("add 2 3")        # prints 5, returns None
    dispatcher("frobnicate 1", print)     # prints "Unknown command: frobnicate"
"""
import difflib
from collections.abc import Iterable
from types import MappingProxyType

from .commands import Command, command
from .faults import *
from .utils import *


def _process_entries(entries):
    """
    Build the name → command table, rejecting duplicate names.

    Raises
    - TypeError: an entry is neither a Command, a callable, nor a (name, source) pair.
    - ValueError: two entries resolve to the same name.
    """
    commands = {}

    for entry in entries:
        if isinstance(entry, Command):
            name, target = entry.name, entry
        elif callable(entry):
            target = command(entry)
            name = target.name
        elif isinstance(entry, tuple) and len(entry) == 2:
            name, source = entry
            if not isinstance(name, str):
                raise TypeError("Dispatcher entry name must be a string")
            elif not name or name != "".join(name.split()):
                raise ValueError("Dispatcher entry name cannot be empty or contain whitespace")
            if isinstance(source, Command):
                target = source
            elif callable(source):
                target = command(source, name)
            else:
                raise TypeError("Dispatcher entry source must be a command or a callable")
        else:
            raise TypeError("Dispatcher entries must be commands, callables or (name, source) pairs")

        if name in commands:
            raise ValueError(f"Dispatcher command name {name!r} is already in use")
        commands[name] = target

    return commands


class Dispatcher:
    """
    Immutable command registry and line dispatcher.

    Properties (read-only)
    - commands: mapping proxy of name → Command.
    - separator: tokenization policy (see module docs).
    - shell, fancy, colorful: rendering flags used when a fault is triggered.
    - fallback: default error sink for __call__ (receives the fault message).

    The dispatcher keeps no per-dispatch state, so one instance can serve several
    threads as long as state captured by the commands is synchronized by its owner.
    """

    separator = mirror("separator")
    shell = mirror("shell")
    fancy = mirror("fancy")
    colorful = mirror("colorful")
    fallback = mirror("fallback")

    def __init__(
            self,
            *entries,
            separator=" ",
            shell=False,
            fancy=False,
            colorful=False,
            fallback=Unset
    ):
        if separator is not None:
            if not isinstance(separator, str):
                raise TypeError("Dispatcher 'separator' must be a string or None")
            elif not separator:
                raise ValueError("Dispatcher 'separator' cannot be empty")
        if fallback is not Unset and not callable(fallback):
            raise TypeError("Dispatcher 'fallback' must be callable")

        self._commands = _process_entries(entries)
        self._separator = separator
        self._shell = bool(shell)
        self._fancy = bool(fancy)
        self._colorful = bool(colorful)
        self._fallback = fallback

    @property
    def commands(self):
        return MappingProxyType(self._commands)

    def __len__(self):
        return len(self._commands)

    def __iter__(self):
        return iter(self._commands)

    def __contains__(self, name):
        return name in self._commands

    def __getitem__(self, name):
        return self._commands[name]

    def __repr__(self):
        return "dispatcher(%s)" % ", ".join("%s=%r" % pair for pair in self.__rich_repr__())

    def __rich_repr__(self):
        yield "commands", tuple(self._commands)
        yield "separator", self._separator
        yield "shell", self._shell

    def _tokenize(self, prompt):
        if isinstance(prompt, str):
            return prompt.split(self._separator) or [""]
        if not isinstance(prompt, Iterable):
            raise TypeError("dispatch() argument must be a string or an iterable of strings")
        tokens = list(prompt)
        if not tokens:
            raise ValueError("dispatch() argument must contain at least the command name")
        for token in tokens:
            if not isinstance(token, str):
                raise TypeError("dispatch() argument must be a string or an iterable of strings")
        return tokens

    def _unknown(self, name):
        suggestions = difflib.get_close_matches(name, self._commands.keys(), 3)
        if suggestions:
            hint = "did you mean %r?" % suggestions[0]
        elif self._commands:
            hint = "available commands: %s" % ", ".join(sorted(self._commands))
        else:
            hint = "no command is registered"
        return UnknownCommandError(
            "Unknown command: %s" % name,
            title="unknown command",
            code=FaultCode.UNKNOWN_COMMAND,
            tool=self,
            input=name,
            suggestions=tuple(suggestions),
            hint=hint,
            docs=getdoc(FaultCode.UNKNOWN_COMMAND),
        )

    def dispatch(self, prompt, /):
        """
        Dispatch one line (str) or a pre-split token sequence.

        Returns
        - None when the command ran.
        - UnknownCommandError when the first token names no command (nothing runs).
        - Whatever fault the command's __invoke__ returned, unchanged.

        Raises
        - TypeError: prompt is neither a string nor an iterable of strings.
        - ValueError: an empty token sequence (there is no command name to resolve).
        """
        name, *arguments = self._tokenize(prompt)
        try:
            target = self._commands[name]
        except KeyError:
            return self._unknown(name)
        return target.__invoke__(arguments)

    def __call__(self, prompt, /, fallback=Unset):
        """
        Dispatch and sink the fault, if any.

        The fault message goes to fallback (argument first, then the dispatcher's own);
        without one, the fault is triggered with this dispatcher's rendering flags.
        """
        fault = self.dispatch(prompt)
        if fault is None:
            return
        if (handler := coalesce(fallback, self._fallback)) is not Unset:
            handler(fault.message)
            return
        trigger(fault, shell=self._shell, fancy=self._fancy, colorful=self._colorful)


def invoke(object, prompt, /, **options):
    """
    Convenience runner for dispatchers, commands and plain callables.

    Parameters
    - object: Dispatcher | Command | Callable (wrapped with command()).
    - prompt: str | Iterable[str]. For a command, a str holds only the arguments and
      is split on single spaces exactly like the text after "<name> " in a dispatched
      line: "" is one empty argument. Pass [] to run a command without arguments.
    - options: rendering overrides (shell, fancy, colorful) for trigger().

    Behavior
    - Any fault is triggered: raised outside shell mode, rendered in shell mode.
    """
    if isinstance(object, Dispatcher):
        fault = object.dispatch(prompt)
        options = {
            "shell": object.shell,
            "fancy": object.fancy,
            "colorful": object.colorful,
        } | options
    elif hasattr(object, "__invoke__") and callable(object.__invoke__):
        if isinstance(prompt, str):
            prompt = prompt.split(" ")
        fault = object.__invoke__(prompt)
    elif callable(object):
        return invoke(command(object), prompt, **options)
    else:
        raise TypeError("invoke() first argument must be a dispatcher, a command or a callable")

    if fault is not None:
        trigger(fault, **options)


__all__ = (
    "Dispatcher",
    "invoke",
)
