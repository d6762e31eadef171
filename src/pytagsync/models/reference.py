"""
Dependency reference targets.

Design Pattern: Sum Type
A dependency target is either a concrete identifier or one of two deferred
forms that must be looked up in an index first:

    Reference = Concrete | ByName | ByGalleryType

Only Concrete references take part in graph traversal and topological
ordering. Deferred references stay deferred when resolution fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

BY_NAME_PREFIX = "by-name:"
BY_GALLERY_TYPE_PREFIX = "by-gallery-type:"


@dataclass(frozen=True)
class Concrete:
    """Reference to an entity by its identifier."""

    entity_id: str

    def __str__(self) -> str:
        return self.entity_id


@dataclass(frozen=True)
class ByName:
    """Reference to an entity by its display name."""

    name: str

    def __str__(self) -> str:
        return f"{BY_NAME_PREFIX}{self.name}"


@dataclass(frozen=True)
class ByGalleryType:
    """Reference to a template by its gallery or container-scoped type key."""

    type_key: str

    def __str__(self) -> str:
        return f"{BY_GALLERY_TYPE_PREFIX}{self.type_key}"


Reference = Union[Concrete, ByName, ByGalleryType]


def is_deferred(reference: Reference) -> bool:
    return not isinstance(reference, Concrete)


def parse_reference(text: str) -> Reference:
    """Parse the string form produced by ``str(reference)``."""
    if text.startswith(BY_NAME_PREFIX):
        return ByName(text[len(BY_NAME_PREFIX):])
    if text.startswith(BY_GALLERY_TYPE_PREFIX):
        return ByGalleryType(text[len(BY_GALLERY_TYPE_PREFIX):])
    return Concrete(text)
