"""
Identifier mapping between source and target workspaces.

IdMapper holds four indices:
- forward: source ref -> MappingEntry
- reverse: target ref -> source id
- name: target name -> target ref (for ``{{name}}`` and by-name lookups)
- template type equivalence: source type key -> target type key

Entries are created the moment a target entity exists (created, or matched
under a skip policy) and are never updated afterwards.

Concurrency:
add_safe() takes one asyncio.Lock before touching the indices, so
concurrent creation tasks can register mappings safely. add() is the
unlocked variant for strictly sequential callers. Reads never lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

from pytagsync.models import (
    BY_GALLERY_TYPE_PREFIX,
    BY_NAME_PREFIX,
    ByGalleryType,
    ByName,
    Concrete,
    EntityKind,
    EntityRef,
    MappingEntry,
    Reference,
)

logger = logging.getLogger(__name__)

__all__ = ["IdMapper"]

SourceKey = str | EntityRef | Reference


class IdMapper:
    """
    Bidirectional source <-> target identifier table.

    Example:
        mapper = IdMapper()
        mapper.add("12", "301", EntityKind.VARIABLE, "DLV - user_id")

        mapper.get_new_id("12", EntityKind.VARIABLE)   # "301"
        mapper.get_new_id(ByName("DLV - user_id"))     # "301"
        mapper.get_original_id("301")                  # "12"
    """

    def __init__(self):
        self._forward: dict[EntityRef, MappingEntry] = {}
        self._reverse: dict[EntityRef, str] = {}
        self._names: dict[str, EntityRef] = {}
        self._template_types: dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._forward)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, EntityRef, Concrete, ByName, ByGalleryType)):
            return False
        return self.has_mapping(key)

    def __repr__(self) -> str:
        return f"IdMapper(size={len(self._forward)}, template_types={len(self._template_types)})"

    @property
    def size(self) -> int:
        return len(self._forward)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add(self, source_id: str, target_id: str, kind: EntityKind, name: str) -> MappingEntry:
        """Register a mapping. Not locked; for sequential callers only."""
        entry = MappingEntry(source_id=str(source_id), target_id=str(target_id), kind=kind, name=name)
        self._forward[entry.source_ref] = entry
        self._reverse[entry.target_ref] = entry.source_id
        self._names[name] = entry.target_ref
        logger.debug(f"Mapped {kind.value} {source_id} -> {target_id} ({name!r})")
        return entry

    async def add_safe(
        self, source_id: str, target_id: str, kind: EntityKind, name: str
    ) -> MappingEntry:
        """Register a mapping under the mapper's lock."""
        async with self._lock:
            return self.add(source_id, target_id, kind, name)

    def add_template_type_equivalence(self, source_type: str, target_type: str) -> None:
        """Record that a source-side template type key maps to a target-side one."""
        if source_type == target_type:
            return
        self._template_types[source_type] = target_type
        logger.debug(f"Template type {source_type} -> {target_type}")

    def get_template_type_equivalence(self, source_type: str) -> str | None:
        return self._template_types.get(source_type)

    @property
    def template_types(self) -> dict[str, str]:
        return dict(self._template_types)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _find(self, source_id: str, kind: EntityKind | None) -> MappingEntry | None:
        if kind is not None:
            return self._forward.get(EntityRef(kind, source_id))
        for entry in self._forward.values():
            if entry.source_id == source_id:
                return entry
        return None

    def get_mapping(self, key: SourceKey, kind: EntityKind | None = None) -> MappingEntry | None:
        if isinstance(key, EntityRef):
            return self._forward.get(key)
        if isinstance(key, ByName):
            ref = self._names.get(key.name)
            if ref is None or (kind is not None and ref.kind is not kind):
                return None
            source_id = self._reverse.get(ref)
            return self._forward.get(EntityRef(ref.kind, source_id)) if source_id else None
        if isinstance(key, ByGalleryType):
            return None
        if isinstance(key, Concrete):
            key = key.entity_id
        if key.startswith(BY_NAME_PREFIX):
            return self.get_mapping(ByName(key[len(BY_NAME_PREFIX):]), kind)
        return self._find(key, kind)

    def get_new_id(self, key: SourceKey, kind: EntityKind | None = None) -> str | None:
        """Target id for a source id, ref, or reference.

        By-name references go through the name index. A by-gallery-type
        reference returns the equivalent target type key.
        """
        if isinstance(key, ByGalleryType):
            return self.get_template_type_equivalence(key.type_key)
        if isinstance(key, str) and key.startswith(BY_GALLERY_TYPE_PREFIX):
            return self.get_template_type_equivalence(key[len(BY_GALLERY_TYPE_PREFIX):])
        entry = self.get_mapping(key, kind)
        return entry.target_id if entry else None

    def get_new_id_by_name(self, name: str, kind: EntityKind | None = None) -> str | None:
        ref = self._names.get(name)
        if ref is None or (kind is not None and ref.kind is not kind):
            return None
        return ref.entity_id

    def get_original_id(self, target_id: str, kind: EntityKind | None = None) -> str | None:
        if kind is not None:
            return self._reverse.get(EntityRef(kind, target_id))
        for ref, source_id in self._reverse.items():
            if ref.entity_id == target_id:
                return source_id
        return None

    def has_mapping(self, key: SourceKey, kind: EntityKind | None = None) -> bool:
        return self.get_new_id(key, kind) is not None

    def has_name(self, name: str) -> bool:
        return name in self._names

    def entries(self) -> list[MappingEntry]:
        return list(self._forward.values())

    def snapshot(self) -> dict[EntityRef, MappingEntry]:
        return dict(self._forward)

    def filter_by_kind(self, kind: EntityKind) -> dict[EntityRef, MappingEntry]:
        return {ref: e for ref, e in self._forward.items() if e.kind is kind}

    # ------------------------------------------------------------------
    # Transformation
    # ------------------------------------------------------------------

    def transform_id_references(self, text: str, kind: EntityKind | None = None) -> str:
        """Replace whole-word source ids in text with their target ids.

        Substitution is a single pass, so a target id that equals another
        source id is never rewritten twice. Ids that are part of a deferred
        ``by-name:`` or ``by-gallery-type:`` marker are left alone.
        """
        replacements: dict[str, str] = {}
        for entry in self._forward.values():
            if kind is None or entry.kind is kind:
                replacements.setdefault(entry.source_id, entry.target_id)
        if not replacements or not text:
            return text

        alternatives = "|".join(
            re.escape(source_id) for source_id in sorted(replacements, key=len, reverse=True)
        )
        pattern = re.compile(
            rf"(?<!{re.escape(BY_NAME_PREFIX)})(?<!{re.escape(BY_GALLERY_TYPE_PREFIX)})"
            rf"\b({alternatives})\b"
        )
        return pattern.sub(lambda m: replacements[m.group(1)], text)

    def transform_id_array(self, ids: list[str], kind: EntityKind | None = None) -> list[str]:
        """Map every id in the list, keeping ids that have no mapping."""
        return [self.get_new_id(str(i), kind) or str(i) for i in ids]

    def transform_fields(
        self,
        record: dict[str, Any],
        fields: dict[str, EntityKind | None] | list[str],
    ) -> dict[str, Any]:
        """Return a copy of ``record`` with only the named fields mapped.

        ``fields`` is either a list of field names or a field -> kind dict
        when the ids are only unique within a kind.
        """
        kinds = fields if isinstance(fields, dict) else dict.fromkeys(fields)
        result = dict(record)
        for field_name, kind in kinds.items():
            value = result.get(field_name)
            if isinstance(value, list):
                result[field_name] = self.transform_id_array(value, kind)
            elif isinstance(value, str) and value:
                result[field_name] = self.get_new_id(value, kind) or value
        return result

    # ------------------------------------------------------------------
    # Lifecycle and persistence
    # ------------------------------------------------------------------

    def clear(self) -> None:
        self._forward.clear()
        self._reverse.clear()
        self._names.clear()
        self._template_types.clear()

    def to_dict(self) -> dict[str, dict[str, str]]:
        """Flat mapping keyed by source id.

        Ids are only unique within a kind, so colliding source ids are
        qualified as ``<kind>:<id>``.
        """
        counts: dict[str, int] = {}
        for entry in self._forward.values():
            counts[entry.source_id] = counts.get(entry.source_id, 0) + 1
        data = {}
        for ref, entry in self._forward.items():
            key = entry.source_id if counts[entry.source_id] == 1 else str(ref)
            data[key] = entry.to_dict()
        return data

    def serialize(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def deserialize(cls, data: str | dict[str, Any]) -> IdMapper:
        """Restore a mapper from serialize() output or an equivalent dict."""
        raw = json.loads(data) if isinstance(data, str) else data
        mapper = cls()
        for key, entry in raw.items():
            kind = EntityKind(entry["type"])
            prefix = f"{kind.value}:"
            source_id = key[len(prefix):] if key.startswith(prefix) else key
            mapper.add(source_id, entry["newId"], kind, entry["name"])
        return mapper

    def to_log_string(self) -> str:
        lines = ["ID Mapping:"]
        for kind in EntityKind:
            entries = [e for e in self._forward.values() if e.kind is kind]
            if not entries:
                continue
            lines.append(f"  [{kind.value.upper()}]")
            lines.extend(f'    "{e.name}": {e.source_id} -> {e.target_id}' for e in entries)
        if self._template_types:
            lines.append("  [TEMPLATE TYPE MAPPING]")
            lines.extend(f"    {old} -> {new}" for old, new in self._template_types.items())
        return "\n".join(lines)
