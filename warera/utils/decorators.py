"""Class decorators."""

import functools
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


def singleton(cls: type[T]) -> Callable[..., T]:
    """
    Make every call of ``cls`` return the same shared instance.

    The instance is built lazily on the first call, with that call's
    arguments; later arguments are ignored, so shared services expose
    explicit setters (see ``Settings.use_database``) instead of taking
    dependencies in ``__init__``.

    ``_clear()`` forgets the instance so the next call builds a new one.
    """
    instance: Optional[T] = None

    @functools.wraps(cls)
    def shared(*args: Any, **kwargs: Any) -> T:
        nonlocal instance
        if instance is None:
            instance = cls(*args, **kwargs)
        return instance

    def clear() -> None:
        nonlocal instance
        instance = None

    shared._clear = clear  # type: ignore[attr-defined]
    return shared
