from __future__ import annotations

from langgraph.graph import END, StateGraph

from relay.graph.state import PollState
from relay.nodes.deliver import Template, make_deliver_node
from relay.nodes.fetch import Fetcher, make_fetch_node
from relay.nodes.parse import Parser, make_parse_node
from relay.nodes.persist import make_persist_node
from relay.nodes.select import IdOf, make_select_node, stable_id
from relay.services.discord_client import Delivery
from relay.services.kv_store import KeyValueStore


def _continue_unless_failed(state: PollState) -> str:
    return "end" if state.get("failed") else "continue"


def _deliver_if_selected(state: PollState) -> str:
    if state.get("failed") or not state.get("selected"):
        return "end"
    return "continue"


def build_poll_workflow(
    fetcher: Fetcher,
    parser: Parser,
    template: Template,
    destination: str,
    processed_ids_key: str,
    store: KeyValueStore,
    delivery: Delivery,
    max_items_per_run: int = 5,
    processed_ids_limit: int = 100,
    id_of: IdOf = stable_id,
):
    graph = StateGraph(PollState)

    graph.add_node("fetch", make_fetch_node(fetcher))
    graph.add_node("parse", make_parse_node(parser))
    graph.add_node("select", make_select_node(store, processed_ids_key, max_items_per_run, id_of))
    graph.add_node("deliver", make_deliver_node(template, destination, delivery, id_of))
    graph.add_node("persist", make_persist_node(store, processed_ids_key, processed_ids_limit))

    graph.set_entry_point("fetch")
    graph.add_conditional_edges("fetch", _continue_unless_failed, {"continue": "parse", "end": END})
    graph.add_conditional_edges("parse", _continue_unless_failed, {"continue": "select", "end": END})
    graph.add_conditional_edges("select", _deliver_if_selected, {"continue": "deliver", "end": END})
    graph.add_edge("deliver", "persist")
    graph.add_edge("persist", END)

    return graph.compile()
