from __future__ import annotations

import logging
from typing import Awaitable, Callable

from langsmith import traceable

from relay.graph.state import PollState

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[str]]


def make_fetch_node(fetcher: Fetcher):
    @traceable(name="fetch_node")
    async def fetch_node(state: PollState) -> PollState:
        source = state.get("source", "source")
        next_state: PollState = dict(state)
        try:
            next_state["text"] = await fetcher()
        except Exception as exc:
            logger.error("Fetching %s failed: %s", source, exc)
            next_state["failed"] = True
            next_state["message"] = f"Error processing {source}: {exc}"
            return next_state

        logger.info("Fetched %s (%s characters)", source, len(next_state["text"]))
        return next_state

    return fetch_node
