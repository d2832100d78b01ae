from __future__ import annotations

import logging

from langsmith import traceable

from relay.graph.state import PollState
from relay.services.kv_store import KeyValueStore, save_json

logger = logging.getLogger(__name__)


def make_persist_node(store: KeyValueStore, processed_ids_key: str, processed_ids_limit: int):
    @traceable(name="persist_node")
    async def persist_node(state: PollState) -> PollState:
        source = state.get("source", "source")
        next_state: PollState = dict(state)
        processed_ids = list(state.get("processed_ids", []))
        if processed_ids_limit > 0:
            processed_ids = processed_ids[-processed_ids_limit:]

        try:
            await save_json(store, processed_ids_key, processed_ids)
        except Exception as exc:
            logger.error("Saving processed ids %s failed: %s", processed_ids_key, exc)
            next_state["failed"] = True
            next_state["message"] = f"Error processing {source}: {exc}"
            return next_state

        next_state["processed_ids"] = processed_ids
        next_state["message"] = f"Successfully processed {state.get('processed_count', 0)} new entries"
        return next_state

    return persist_node
