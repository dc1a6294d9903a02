"""Server-side merge of a partial save into the persisted planning document.

The backing store can only replace a whole document, so every save is reconciled
against what is stored: each collection is upserted by item id and collections the
request does not mention are left alone. This keeps two writers that each hold a
partial view from wiping each other's collections. It is not conflict resolution:
two writers changing the same item still resolve as last write wins.
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Iterable, Mapping

from staffplan.errors import StaleMergeDataLoss
from staffplan.schemas import COLLECTIONS

logger = logging.getLogger(__name__)

_ID_NAMESPACE = uuid.UUID("5d2c1f7e-4b0a-4f8e-9a61-3c7b2e9d0f14")
RESERVED_KEYS = frozenset({"deletions", "allowDeletions", "lastModified", "schemaVersion"})


def generated_id(collection: str, index: int, item: Mapping[str, Any]) -> str:
    # Stable for the same payload position, distinct for identical items within one payload.
    content = json.dumps(item, sort_keys=True, default=str)
    return uuid.uuid5(_ID_NAMESPACE, f"{collection}:{index}:{content}").hex


def _strip_derived(collection: str, item: dict[str, Any]) -> dict[str, Any]:
    if collection == "positions":
        item.pop("days", None)
    elif collection == "projects" and isinstance(item.get("positions"), list):
        item["positions"] = [
            {k: v for k, v in position.items() if k != "days"} if isinstance(position, dict) else position
            for position in item["positions"]
        ]
    return item


def merge_collection(
    collection: str,
    existing: Iterable[Mapping[str, Any]],
    incoming: Iterable[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    merged: dict[str, dict[str, Any]] = {}
    for index, item in enumerate(existing):
        item = dict(item)
        merged[str(item.get("id") or generated_id(collection, index, item))] = item
    for index, item in enumerate(incoming):
        item = dict(item)
        if not item.get("id"):
            item["id"] = generated_id(collection, index, item)
        key = str(item["id"])
        merged[key] = {**merged.get(key, {}), **item}
    return [_strip_derived(collection, item) for item in merged.values()]


def merge_documents(
    existing: Mapping[str, Any],
    incoming: Mapping[str, Any],
    *,
    allow_deletions: bool = False,
    strict: bool = False,
    deletions: Mapping[str, Iterable[str]] | None = None,
) -> dict[str, Any]:
    """Merge a partial payload into the persisted document and return the new document.

    ``existing`` is not modified. An empty incoming list replaces the collection; in
    ``strict`` mode that is refused with ``StaleMergeDataLoss`` when it would wipe stored
    items and ``allow_deletions`` is not set. ``deletions`` maps collection names to ids
    to drop after merging and is honoured only with ``allow_deletions``.
    """
    result = dict(existing)
    for collection in COLLECTIONS:
        if collection not in incoming or incoming[collection] is None:
            continue
        current = list(existing.get(collection) or [])
        items = list(incoming[collection])
        if not items:
            if current and strict and not allow_deletions:
                raise StaleMergeDataLoss(collection, len(current))
            if current:
                logger.info("Replacing %d %s with an empty list", len(current), collection)
            result[collection] = []
            continue
        result[collection] = merge_collection(collection, current, items)

    for key, value in incoming.items():
        if key in COLLECTIONS or key in RESERVED_KEYS:
            continue
        result[key] = value

    if deletions:
        if not allow_deletions:
            logger.warning("Ignoring deletions for %s: request does not allow deletions", sorted(deletions))
        else:
            for collection, ids in deletions.items():
                if collection not in COLLECTIONS:
                    continue
                doomed = {str(i) for i in ids}
                result[collection] = [
                    item for item in result.get(collection) or [] if str(item.get("id")) not in doomed
                ]
    return result
