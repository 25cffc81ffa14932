from collections.abc import Callable
from typing import TypeVar

_F = TypeVar("_F", bound=Callable[..., object])


def pure(func: _F) -> _F:
    """Mark a function as pure (no side effects).

    Advisory only; nothing is enforced at runtime. A function marked @pure performs no I/O,
    touches no state outside its scope, and returns the same output for the same inputs.
    The shell-script builders are all marked this way so they can be tested on literal output.
    """
    return func
