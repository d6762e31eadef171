"""
Event producers and consumers, used by reverse discovery.

A custom-event trigger listens for an event name; HTML tags and some known
custom templates push events onto the data layer. Matching the two lets the
graph builder pull in the tags that make a selected trigger fire.

Custom templates run sandboxed code that cannot be scanned, so their pushed
events come from an explicit registry (KNOWN_TEMPLATE_EVENTS) that callers
can extend at runtime.
"""

from __future__ import annotations

import re

from pytagsync.models import Tag, Trigger

__all__ = [
    "KNOWN_TEMPLATE_EVENTS",
    "register_template_events",
    "known_events",
    "extract_custom_event_name",
    "extract_pushed_events",
    "extract_data_layer_events",
]

# Template type -> events pushed by tags of that type
KNOWN_TEMPLATE_EVENTS: dict[str, list[str]] = {
    "cvt_KDDGR": ["gtagApiGet"],
}

_DATA_LAYER_PUSH = re.compile(
    r"""dataLayer\.push\s*\(\s*\{[^}]*["']?event["']?\s*:\s*["']([^"']+)["']""",
    re.IGNORECASE,
)

EVENT_VARIABLE = "{{_event}}"


def register_template_events(template_type: str, events: list[str]) -> None:
    KNOWN_TEMPLATE_EVENTS[template_type] = list(events)


def known_events() -> list[str]:
    events: dict[str, None] = {}
    for names in KNOWN_TEMPLATE_EVENTS.values():
        for name in names:
            events.setdefault(name, None)
    return list(events)


def extract_custom_event_name(trigger: Trigger) -> str | None:
    """Return the event a custom-event trigger listens for.

    Only conditions of the form ``{{_event}} <op> <name>`` count.
    """
    if trigger.entity_type != "customEvent":
        return None

    for condition in trigger.filters("customEventFilter"):
        params = {p.get("key"): p.get("value") for p in condition.get("parameter") or []}
        if params.get("arg0") == EVENT_VARIABLE and params.get("arg1"):
            return params["arg1"]
    return None


def extract_data_layer_events(code: str) -> list[str]:
    """Find literal event names in ``dataLayer.push({event: ...})`` calls.

    Dynamic names built from ``{{...}}`` references cannot be tracked and are
    left out.
    """
    events: dict[str, None] = {}
    for match in _DATA_LAYER_PUSH.finditer(code):
        name = match.group(1)
        if "{{" not in name:
            events.setdefault(name, None)
    return list(events)


def extract_pushed_events(tag: Tag) -> list[str]:
    events: dict[str, None] = {}

    if tag.entity_type == "html":
        html = tag.parameter_value("html")
        if html:
            for name in extract_data_layer_events(html):
                events.setdefault(name, None)

    if tag.uses_custom_template:
        for name in KNOWN_TEMPLATE_EVENTS.get(tag.entity_type, []):
            events.setdefault(name, None)

    return list(events)
