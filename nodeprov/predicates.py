"""Predicates used to filter strings and tagged cloud resources."""

from __future__ import annotations

from typing import Callable, Collection, Iterable

from .ec2 import Tag


def within_strings(allowed: Collection[str]) -> Callable[[str], bool]:
    """A predicate that is true for strings among ``allowed``."""
    allowed = list(allowed)
    return lambda actual: actual in allowed


def has_name_tag(name: str) -> Callable[[Iterable[Tag]], bool]:
    """A predicate that is true when the first ``Name`` tag has the given value."""

    def predicate(tags: Iterable[Tag]) -> bool:
        for tag in tags:
            if (tag.key or "") == "Name":
                return (tag.value or "") == name
        return False

    return predicate


def has_tag_key(tag_key: str) -> Callable[[Iterable[Tag]], bool]:
    """A predicate that is true when some tag has the given key."""
    return lambda tags: any((tag.key or "") == tag_key for tag in tags)