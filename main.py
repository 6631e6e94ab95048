from rich.console import Console

from helmsman import *

console = Console()


def add(a: int, b: int):
    """Print the sum of two integers."""
    console.print(a + b)


class Tally:
    """Running total owned by the session."""

    def __init__(self):
        self.total = 0

    def add(self, n: int):
        """Add to the session tally."""
        self.total += n
        console.print(self.total)


def main():
    n = 0
    tally = Tally()
    should_close = False

    def count(c: int):
        """Add to the session counter."""
        nonlocal n
        n += c
        console.print(n)

    def close():
        nonlocal should_close
        should_close = True

    dispatcher = Dispatcher(add, command(tally.add, "scount", static=True), count, ("q", close), shell=True, colorful=True)

    while not should_close:
        try:
            line = console.input("> ")
        except EOFError:
            break
        dispatcher(line, lambda message: console.print(message, style="red"))


if __name__ == '__main__':
    main()
