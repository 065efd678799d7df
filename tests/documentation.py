"""Shared documentation helpers for behavioural tests."""

from __future__ import annotations

from collections.abc import Iterable
from functools import wraps
from typing import Callable, TypeVar, cast

F = TypeVar("F", bound=Callable[..., object])


def documents(note: str) -> Callable[[F], F]:
    """Prefix a test's docstring with the behaviour it pins down."""

    def decorator(func: F) -> F:
        func.__doc__ = note if func.__doc__ is None else f"{note}\n{func.__doc__}"
        return func

    return decorator


def demonstrates(concepts: Iterable[object] | object) -> Callable[[F], F]:
    """Record the pipeline concept(s) a test exercises.

    The concepts are stored on ``__demonstrates__`` and summarised in the
    docstring so they show up in pytest's verbose output.
    """
    if isinstance(concepts, (str, bytes)) or not isinstance(concepts, Iterable):
        concept_list = [concepts]
    else:
        concept_list = list(concepts)

    def decorator(obj: F) -> F:
        names = [getattr(concept, "__name__", str(concept)) for concept in concept_list]
        note = "Demonstrates: " + ", ".join(names)

        @wraps(obj)
        def wrapper(*args, **kwargs):
            return obj(*args, **kwargs)

        wrapper.__doc__ = note if obj.__doc__ is None else f"{note}\n{obj.__doc__}"
        setattr(wrapper, "__demonstrates__", tuple(concept_list))
        return cast(F, wrapper)

    return decorator


__all__ = ["documents", "demonstrates"]
