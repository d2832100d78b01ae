from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from langsmith import traceable

from relay.graph.state import PollState
from relay.schemas.item import IngestibleItem
from relay.services.kv_store import KeyValueStore, read_json

logger = logging.getLogger(__name__)

IdOf = Callable[[IngestibleItem], str]

NO_NEW_ENTRIES = "No new entries to process"


def stable_id(item: IngestibleItem) -> str:
    return item.stable_id


def _chronological_key(item: IngestibleItem) -> tuple[bool, datetime]:
    # undated items sort after dated ones and keep their source order
    published = item.published_at
    if published is None:
        return (True, datetime.min.replace(tzinfo=timezone.utc))
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    return (False, published)


def select_new_items(
    items: list[IngestibleItem],
    processed_ids: set[str],
    max_items: int,
    id_of: IdOf = stable_id,
) -> list[IngestibleItem]:
    seen = set(processed_ids)
    fresh: list[IngestibleItem] = []
    for item in items:
        item_id = id_of(item)
        if item_id in seen:
            continue
        seen.add(item_id)
        fresh.append(item)

    fresh.sort(key=_chronological_key)
    return fresh[: max(max_items, 0)]


def make_select_node(
    store: KeyValueStore,
    processed_ids_key: str,
    max_items_per_run: int,
    id_of: IdOf = stable_id,
):
    @traceable(name="select_node")
    async def select_node(state: PollState) -> PollState:
        source = state.get("source", "source")
        next_state: PollState = dict(state)
        try:
            stored = await read_json(store, processed_ids_key)
        except Exception as exc:
            logger.error("Loading processed ids %s failed: %s", processed_ids_key, exc)
            next_state["failed"] = True
            next_state["message"] = f"Error processing {source}: {exc}"
            return next_state

        if stored is None:
            stored = []
        if not isinstance(stored, list):
            logger.error("Processed ids %s is not a JSON array", processed_ids_key)
            next_state["failed"] = True
            next_state["message"] = f"Error processing {source}: processed ids are not a list"
            return next_state

        processed_ids = [str(value) for value in stored]
        selected = select_new_items(state.get("items", []), set(processed_ids), max_items_per_run, id_of)

        next_state["processed_ids"] = processed_ids
        next_state["selected"] = selected
        if not selected:
            logger.info("%s: no new entries", source)
            next_state["message"] = NO_NEW_ENTRIES
        else:
            logger.info("%s: %s new entries selected", source, len(selected))
        return next_state

    return select_node
