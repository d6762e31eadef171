"""
Source payload -> target create config.

Every function here returns a new dict and leaves its input untouched, so
the creation plan keeps the original payload for auditing.

What changes on the way to the target:
- platform metadata (workspace path, ids, fingerprint) is dropped
- the target name is applied
- trigger id arrays and ``configTagId`` are mapped to target ids
- custom template tag types are mapped through template type equivalence
- setup/teardown tags are sent by name, as the platform requires
- ``{{name}}`` references to renamed variables follow the rename
- notes are kept only on request
"""

from __future__ import annotations

import copy
from typing import Any

from pytagsync.mapping import IdMapper
from pytagsync.models import EntityKind
from pytagsync.resolver.parsers import VARIABLE_REFERENCE_PATTERN

__all__ = ["METADATA_FIELDS", "extract_create_config", "ConfigTransformer"]

METADATA_FIELDS = (
    "accountId",
    "containerId",
    "workspaceId",
    "tagId",
    "triggerId",
    "variableId",
    "templateId",
    "fingerprint",
    "path",
    "parentFolderId",
    "tagManagerUrl",
)

_TEXT_FIELDS = ("parameter", "filter", "autoEventFilter", "customEventFilter")


def extract_create_config(payload: dict[str, Any], kind: EntityKind | None = None) -> dict[str, Any]:
    """Copy of ``payload`` without platform metadata."""
    config = copy.deepcopy(payload)
    for key in METADATA_FIELDS:
        config.pop(key, None)
    if kind is EntityKind.TEMPLATE or "templateData" in config:
        # A replicated template is a new template, not a gallery install
        config.pop("galleryReference", None)
    return config


class ConfigTransformer:
    """Rewrites source payloads for creation in the target workspace.

    Args:
        mapper: Identifier mapping populated by earlier steps of the run
        variable_renames: Source variable name -> target variable name
        preserve_notes: Keep the ``notes`` field
    """

    def __init__(
        self,
        mapper: IdMapper,
        variable_renames: dict[str, str] | None = None,
        *,
        preserve_notes: bool = False,
    ):
        self._mapper = mapper
        self._renames = {k: v for k, v in (variable_renames or {}).items() if k != v}
        self._preserve_notes = preserve_notes

    def transform(self, kind: EntityKind, payload: dict[str, Any], new_name: str) -> dict[str, Any]:
        if kind is EntityKind.TEMPLATE:
            return self.transform_template(payload, new_name)
        if kind is EntityKind.TAG:
            return self.transform_tag(payload, new_name)
        return self._transform_common(payload, new_name)

    def transform_template(self, payload: dict[str, Any], new_name: str) -> dict[str, Any]:
        return {"name": new_name, "templateData": payload.get("templateData", "")}

    def transform_tag(self, payload: dict[str, Any], new_name: str) -> dict[str, Any]:
        config = self._transform_common(payload, new_name)

        tag_type = config.get("type") or ""
        if tag_type.startswith("cvt_"):
            remapped = self._mapper.get_template_type_equivalence(tag_type)
            if remapped:
                config["type"] = remapped

        config = self._mapper.transform_fields(
            config,
            {"firingTriggerId": EntityKind.TRIGGER, "blockingTriggerId": EntityKind.TRIGGER},
        )

        for param in config.get("parameter") or []:
            if param.get("key") == "configTagId" and param.get("value"):
                param["value"] = (
                    self._mapper.get_new_id(param["value"], EntityKind.TAG) or param["value"]
                )

        for field_name in ("setupTag", "teardownTag"):
            if config.get(field_name):
                config[field_name] = [self._sequence_entry(e) for e in config[field_name]]
        return config

    def _transform_common(self, payload: dict[str, Any], new_name: str) -> dict[str, Any]:
        config = extract_create_config(payload)
        config["name"] = new_name
        if not self._preserve_notes:
            config.pop("notes", None)
        if self._renames:
            for field_name in _TEXT_FIELDS:
                if field_name in config:
                    config[field_name] = self._rewrite_references(config[field_name])
        return config

    def _sequence_entry(self, entry: dict[str, Any]) -> dict[str, Any]:
        if entry.get("tagName"):
            return {"tagName": entry["tagName"]}
        if entry.get("tagId"):
            mapping = self._mapper.get_mapping(str(entry["tagId"]), EntityKind.TAG)
            if mapping is not None:
                return {"tagName": mapping.name}
        return dict(entry)

    def rewrite_text(self, text: str) -> str:
        """Apply variable renames to ``{{name}}`` references in text."""

        def replace(match):
            name = match.group(1).strip()
            return "{{" + self._renames[name] + "}}" if name in self._renames else match.group(0)

        return VARIABLE_REFERENCE_PATTERN.sub(replace, text)

    def _rewrite_references(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.rewrite_text(value)
        if isinstance(value, list):
            return [self._rewrite_references(v) for v in value]
        if isinstance(value, dict):
            return {k: self._rewrite_references(v) for k, v in value.items()}
        return value
