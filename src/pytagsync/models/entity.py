"""
Entity snapshots for the four replicated kinds.

Design: Closed Tagged Union
Entity is the common base; Template, Variable, Trigger and Tag are the only
concrete kinds. Each carries its EntityKind as a class attribute so dispatch
tables can key on it instead of switching on loosely typed payloads.

Entities are immutable snapshots of the platform's JSON form, fetched once
per run. The raw payload is kept as received and only ever copied.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class EntityKind(Enum):
    """Kind of a replicated entity."""

    TEMPLATE = "template"
    VARIABLE = "variable"
    TRIGGER = "trigger"
    TAG = "tag"

    @property
    def priority(self) -> int:
        """Creation priority: templates first, tags last."""
        return _KIND_PRIORITY[self]

    @property
    def id_field(self) -> str:
        """Payload key holding this kind's identifier."""
        return f"{self.value}Id"

    def __str__(self) -> str:
        return self.value


_KIND_PRIORITY = {
    EntityKind.TEMPLATE: 0,
    EntityKind.VARIABLE: 1,
    EntityKind.TRIGGER: 2,
    EntityKind.TAG: 3,
}

# Hub variables hold environment-wide settings and never pull in dependencies.
HUB_VARIABLE_TYPES = frozenset({"gtes", "gas"})

CUSTOM_TEMPLATE_PREFIX = "cvt_"
PLACEHOLDER_GALLERY_KEY = "cvt_temp_public_id"
_GALLERY_KEY_PATTERN = re.compile(r'"id":\s*"(cvt_[^"]+)"')


@dataclass(frozen=True)
class EntityRef:
    """Kind-qualified entity identifier.

    Platform identifiers are only unique within a kind, so every graph and
    mapping key pairs the id with its kind.
    """

    kind: EntityKind
    entity_id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.entity_id}"


@dataclass(frozen=True)
class Entity:
    """Immutable snapshot of one source or target entity."""

    entity_id: str
    name: str
    entity_type: str = ""
    payload: dict[str, Any] = field(default_factory=dict, hash=False, repr=False)

    kind: ClassVar[EntityKind]

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.kind, self.entity_id)

    @property
    def parameters(self) -> list[dict[str, Any]]:
        return list(self.payload.get("parameter") or [])

    @property
    def fingerprint(self) -> str | None:
        return self.payload.get("fingerprint")

    @property
    def notes(self) -> str | None:
        return self.payload.get("notes")

    def parameter(self, key: str) -> dict[str, Any] | None:
        """Return the top-level parameter with the given key, if any."""
        for param in self.parameters:
            if param.get("key") == key:
                return param
        return None

    def parameter_value(self, key: str) -> str | None:
        param = self.parameter(key)
        if param is None:
            return None
        return param.get("value")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Entity":
        """Build a snapshot from the platform's JSON representation."""
        entity_id = data.get(cls.kind.id_field)
        if entity_id is None:
            raise ValueError(f"{cls.kind.value} payload has no {cls.kind.id_field}")
        return cls(
            entity_id=str(entity_id),
            name=data.get("name", ""),
            entity_type=data.get("type", ""),
            payload=dict(data),
        )

    def to_api(self) -> dict[str, Any]:
        """Return a copy of the payload with id, name and type filled in."""
        data = dict(self.payload)
        data[self.kind.id_field] = self.entity_id
        data["name"] = self.name
        if self.entity_type:
            data["type"] = self.entity_type
        return data


@dataclass(frozen=True)
class Template(Entity):
    """Custom template definition. Templates are dependency-free leaves."""

    kind: ClassVar[EntityKind] = EntityKind.TEMPLATE

    @property
    def container_id(self) -> str | None:
        value = self.payload.get("containerId")
        return str(value) if value is not None else None

    @property
    def template_data(self) -> str:
        return self.payload.get("templateData") or ""

    @property
    def container_type_key(self) -> str | None:
        """Per-container type key, ``cvt_<containerId>_<templateId>``."""
        if not self.container_id:
            return None
        return container_type_key(self.container_id, self.entity_id)

    @property
    def gallery_type_key(self) -> str | None:
        return gallery_type_key(self.template_data)


@dataclass(frozen=True)
class Variable(Entity):
    kind: ClassVar[EntityKind] = EntityKind.VARIABLE

    @property
    def is_hub(self) -> bool:
        return self.entity_type in HUB_VARIABLE_TYPES


@dataclass(frozen=True)
class Trigger(Entity):
    kind: ClassVar[EntityKind] = EntityKind.TRIGGER

    FILTER_FIELDS: ClassVar[tuple[str, ...]] = ("filter", "autoEventFilter", "customEventFilter")

    def filters(self, field_name: str) -> list[dict[str, Any]]:
        return list(self.payload.get(field_name) or [])


@dataclass(frozen=True)
class Tag(Entity):
    kind: ClassVar[EntityKind] = EntityKind.TAG

    @property
    def firing_trigger_ids(self) -> list[str]:
        return [str(i) for i in self.payload.get("firingTriggerId") or []]

    @property
    def blocking_trigger_ids(self) -> list[str]:
        return [str(i) for i in self.payload.get("blockingTriggerId") or []]

    @property
    def setup_tags(self) -> list[dict[str, Any]]:
        return list(self.payload.get("setupTag") or [])

    @property
    def teardown_tags(self) -> list[dict[str, Any]]:
        return list(self.payload.get("teardownTag") or [])

    @property
    def uses_custom_template(self) -> bool:
        return self.entity_type.startswith(CUSTOM_TEMPLATE_PREFIX)


ENTITY_CLASSES: dict[EntityKind, type[Entity]] = {
    EntityKind.TEMPLATE: Template,
    EntityKind.VARIABLE: Variable,
    EntityKind.TRIGGER: Trigger,
    EntityKind.TAG: Tag,
}


def entity_from_api(kind: EntityKind, data: dict[str, Any]) -> Entity:
    """Build the snapshot class matching ``kind`` from platform JSON."""
    return ENTITY_CLASSES[kind].from_api(data)


def container_type_key(container_id: str, template_id: str) -> str:
    return f"{CUSTOM_TEMPLATE_PREFIX}{container_id}_{template_id}"


def gallery_type_key(template_data: str | None) -> str | None:
    """Extract the gallery type key embedded in a template's data blob.

    Returns None when no key is present or the key is the unpublished
    placeholder.
    """
    if not template_data:
        return None
    match = _GALLERY_KEY_PATTERN.search(template_data)
    if match is None or match.group(1) == PLACEHOLDER_GALLERY_KEY:
        return None
    return match.group(1)
