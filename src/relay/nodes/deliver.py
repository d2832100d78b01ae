from __future__ import annotations

import logging
from typing import Any, Callable

from langsmith import traceable

from relay.graph.state import PollState
from relay.nodes.select import IdOf, stable_id
from relay.schemas.item import IngestibleItem
from relay.services.discord_client import Delivery

logger = logging.getLogger(__name__)

Template = Callable[[IngestibleItem], dict[str, Any]]


def make_deliver_node(
    template: Template,
    destination: str,
    delivery: Delivery,
    id_of: IdOf = stable_id,
):
    @traceable(name="deliver_node")
    async def deliver_node(state: PollState) -> PollState:
        next_state: PollState = dict(state)
        processed_ids = list(state.get("processed_ids", []))
        errors = list(state.get("errors", []))
        attempted = 0

        for item in state.get("selected", []):
            item_id = id_of(item)
            try:
                payload = template(item)
            except Exception as exc:
                logger.exception("Building payload for %s failed", item_id)
                errors.append(f"Template failure ({item_id}): {exc}")
                processed_ids.append(item_id)
                continue

            result = await delivery.deliver(destination, payload)
            # marked whatever the outcome, one attempt per item
            processed_ids.append(item_id)
            attempted += 1
            if not result.success:
                logger.error("Delivery of %s failed: %s", item_id, result.error)
                errors.append(f"Delivery failure ({item_id}): {result.error}")

        next_state["processed_ids"] = processed_ids
        next_state["processed_count"] = attempted
        next_state["errors"] = errors
        logger.info("Delivery complete: %s attempted, %s errors", attempted, len(errors))
        return next_state

    return deliver_node
