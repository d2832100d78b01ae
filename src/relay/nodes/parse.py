from __future__ import annotations

import logging
from typing import Callable

from langsmith import traceable

from relay.graph.state import PollState
from relay.schemas.item import IngestibleItem

logger = logging.getLogger(__name__)

Parser = Callable[[str], list[IngestibleItem]]


def make_parse_node(parser: Parser):
    @traceable(name="parse_node")
    async def parse_node(state: PollState) -> PollState:
        source = state.get("source", "source")
        next_state: PollState = dict(state)
        try:
            items = parser(state.get("text", ""))
        except Exception as exc:
            logger.error("Parsing %s failed: %s", source, exc)
            next_state["failed"] = True
            next_state["message"] = f"Error processing {source}: {exc}"
            return next_state

        next_state["items"] = items
        logger.info("Parsed %s items from %s", len(items), source)
        return next_state

    return parse_node
