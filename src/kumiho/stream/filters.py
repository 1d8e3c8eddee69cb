"""
Event filtering for the Kumiho stream.

Server side, the stream is narrowed with a routing-key filter derived from
(trigger type, action) and an optional kref subtree filter. Client side,
every event is re-checked before delivery:

    1. subtree     kref equals the root or starts with root + "/"
    2. name        type-specific name/tag/artifact/revision match
    3. item parts  wildcard match on the name and kind of the kref tail

All filters are permissive by default: an empty filter passes everything.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any

from core.errors.exceptions import ValidationError
from kumiho.stream.events import SseEvent

KREF_SCHEME = "kref://"
SUBTREE_GLOB = "/**"


class TriggerType(str, Enum):
    ITEM = "item"
    REVISION = "revision"
    ARTIFACT = "artifact"
    EDGE = "edge"


class StreamAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    TAGGED = "tagged"


@dataclass(frozen=True)
class FilterConfig:
    """
    Filter settings for one stream consumer.

    Attributes:
        trigger_type: Entity type the consumer listens for
        stream_action: Action on that entity (tagged is revision-only)
        context_path: Project/space path or kref glob limiting the subtree
        name_pattern: Name filter; a dotted pattern matches the full routing key
        item_name_filter: Wildcard on the item name parsed from the kref
        item_kind_filter: Wildcard on the item kind parsed from the kref
    """

    trigger_type: TriggerType
    stream_action: StreamAction
    context_path: str = ""
    name_pattern: str = ""
    item_name_filter: str = ""
    item_kind_filter: str = ""

    def __post_init__(self):
        try:
            trigger_type = TriggerType(self.trigger_type)
            stream_action = StreamAction(self.stream_action)
        except ValueError as e:
            raise ValidationError(f"Invalid stream filter: {e}", cause=e) from e

        if stream_action is StreamAction.TAGGED and trigger_type is not TriggerType.REVISION:
            raise ValidationError(
                f"Action 'tagged' is only valid for revision triggers, got '{trigger_type.value}'"
            )

        object.__setattr__(self, "trigger_type", trigger_type)
        object.__setattr__(self, "stream_action", stream_action)
        for name in ("context_path", "name_pattern", "item_name_filter", "item_kind_filter"):
            object.__setattr__(self, name, (getattr(self, name) or "").strip())

    @property
    def routing_key_filter(self) -> str:
        return routing_key_filter(self.trigger_type, self.stream_action)

    @property
    def kref_filter(self) -> str:
        return normalize_context_path(self.context_path)


# (trigger type, action) pairs whose routing keys do not follow <type>.<action>
_ROUTING_KEY_OVERRIDES = {
    (TriggerType.ITEM, StreamAction.DELETED): "item.deleted,item.deprecated",
    (TriggerType.ITEM, StreamAction.UPDATED): "item.*.updated,item.metadata.updated",
    (TriggerType.ARTIFACT, StreamAction.DELETED): "artifact.deleted,artifact.deprecated",
    (TriggerType.ARTIFACT, StreamAction.UPDATED): "artifact.*.updated,artifact.metadata.updated",
    (TriggerType.REVISION, StreamAction.UPDATED): "revision.*.updated,revision.metadata.updated",
    (TriggerType.REVISION, StreamAction.DELETED): "revision.deleted,revision.deprecated",
}


def routing_key_filter(trigger_type: TriggerType | str, action: StreamAction | str) -> str:
    """Server-side routing key filter for a (trigger type, action) pair."""
    trigger_type = TriggerType(trigger_type)
    action = StreamAction(action)

    override = _ROUTING_KEY_OVERRIDES.get((trigger_type, action))
    if override:
        return override
    if trigger_type is TriggerType.ITEM:
        return f"item.*.{action.value}"
    return f"{trigger_type.value}.{action.value}"


def _has_glob(value: str) -> bool:
    return "*" in value or "?" in value


def normalize_context_path(path: str | None) -> str:
    """
    Normalize a context path into a kref subtree filter.

    "proj/space" -> "kref://proj/space/**". Input that already contains
    glob characters is passed through unchanged.
    """
    raw = (path or "").strip()
    if not raw:
        return ""
    if _has_glob(raw):
        return raw
    with_scheme = raw if raw.startswith(KREF_SCHEME) else f"{KREF_SCHEME}{raw.lstrip('/')}"
    return f"{with_scheme.rstrip('/')}{SUBTREE_GLOB}"


def context_prefix(kref_filter: str | None) -> str:
    """Literal subtree root of a kref filter, or "" when it is a free-form glob."""
    value = (kref_filter or "").strip()
    if not value:
        return ""
    if value.endswith(SUBTREE_GLOB):
        return value[: -len(SUBTREE_GLOB)]
    if _has_glob(value):
        return ""
    return value


def matches_context_path(event: SseEvent, context_path: str | None) -> bool:
    kref_filter = normalize_context_path(context_path)
    if not kref_filter:
        return True
    if not event.kref:
        return False

    prefix = context_prefix(kref_filter)
    if not prefix:
        # Glob filter; the server already applied it
        return True

    if event.kref == prefix:
        return True
    return event.kref.startswith(prefix if prefix.endswith("/") else f"{prefix}/")


@lru_cache(maxsize=256)
def _wildcard_regex(pattern: str) -> re.Pattern:
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$", re.DOTALL)


def matches_wildcard(value: str | None, pattern: str | None) -> bool:
    """Anchored match where * is any run of characters and ? is one character."""
    value = (value or "").strip()
    pattern = (pattern or "").strip()
    if not pattern:
        return True
    if not _has_glob(pattern):
        return value == pattern
    return bool(_wildcard_regex(pattern).match(value))


def kref_query_param(kref: str, key: str) -> str | None:
    if "?" not in kref:
        return None
    query = kref.split("?", 1)[1]
    for part in query.split("&"):
        k, _, v = part.partition("=")
        if k == key:
            return v
    return None


def kref_last_segment(kref: str) -> str:
    without_query = kref.split("?", 1)[0]
    parts = [p for p in without_query.split("/") if p]
    return parts[-1] if parts else without_query


def parse_item_name_kind(kref: str) -> tuple[str, str]:
    """
    Split the last kref segment into (name, kind) at the last dot.

    "kref://p/s/hero.model?r=2" -> ("hero", "model"). Without a usable dot
    the whole segment is the name and kind is "".
    """
    last = kref_last_segment(kref or "")
    dot = last.rfind(".")
    if 0 < dot < len(last) - 1:
        return last[:dot], last[dot + 1 :]
    return last, ""


def _routing_key_name_segment(routing_key: str, expected_type: str) -> str:
    segments = [s.strip() for s in routing_key.strip().split(".") if s.strip()]
    if len(segments) >= 3 and segments[0] == expected_type:
        return segments[1]
    return ""


def _first_detail(details: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = details.get(key)
        if value is not None and value != "":
            return str(value)
    return ""


def matches_name_filter(
    event: SseEvent,
    trigger_type: TriggerType | str,
    action: StreamAction | str,
    pattern: str | None,
) -> bool:
    needle = (pattern or "").strip()
    if not needle:
        return True

    trigger_type = TriggerType(trigger_type)
    action = StreamAction(action)

    # A dotted pattern is a full routing key pattern
    if "." in needle:
        return matches_wildcard(event.routing_key, needle)

    if trigger_type is TriggerType.ITEM:
        name = _routing_key_name_segment(event.routing_key, "item")
        return bool(name) and matches_wildcard(name, needle)

    if trigger_type is TriggerType.REVISION and action is StreamAction.UPDATED:
        name = _routing_key_name_segment(event.routing_key, "revision")
        return bool(name) and matches_wildcard(name, needle)

    if trigger_type is TriggerType.REVISION and action is StreamAction.TAGGED:
        tag = _first_detail(event.details, "tag", "tag_name", "tagName")
        return matches_wildcard(tag, needle)

    if trigger_type is TriggerType.ARTIFACT:
        name = _first_detail(event.details, "artifact_name", "artifactName", "name")
        if not name:
            name = kref_query_param(event.kref, "a") or ""
        return bool(name) and matches_wildcard(name, needle)

    if trigger_type is TriggerType.REVISION:
        # Either the kref ?r= or the detail revision number may match
        candidates = (
            kref_query_param(event.kref, "r") or "",
            _first_detail(event.details, "revision_number", "revisionNumber", "number"),
        )
        return any(value and matches_wildcard(value, needle) for value in candidates)

    # Edges have no name to match against
    return False


def matches_item_parts(
    event: SseEvent, item_name_filter: str | None, item_kind_filter: str | None
) -> bool:
    if not item_name_filter and not item_kind_filter:
        return True
    name, kind = parse_item_name_kind(event.kref)
    if item_name_filter and not matches_wildcard(name, item_name_filter):
        return False
    if item_kind_filter and not matches_wildcard(kind, item_kind_filter):
        return False
    return True


class EventFilterPipeline:
    """Client-side filters for one FilterConfig, cheapest first."""

    def __init__(self, config: FilterConfig):
        self.config = config

    def accepts(self, event: SseEvent) -> bool:
        config = self.config
        if not matches_context_path(event, config.context_path):
            return False
        if not matches_name_filter(
            event, config.trigger_type, config.stream_action, config.name_pattern
        ):
            return False
        return matches_item_parts(event, config.item_name_filter, config.item_kind_filter)
