"""일정 생성 그래프 워크플로우 구성."""

from langgraph.graph import END, StateGraph

from app.graph.itinerary.nodes import (
    analyze_intent,
    assemble_itinerary,
    build_search_plan,
    check_quality,
    resolve_stops,
)
from app.graph.itinerary.state import ItineraryState


def _route_on_error(next_node: str):
    def _route(state: ItineraryState) -> str:
        return END if state.get("error") else next_node

    return _route


def _create_itinerary_workflow() -> StateGraph:
    """일정 생성 그래프 워크플로우를 생성합니다."""
    workflow = StateGraph(ItineraryState)

    workflow.add_node("analyze_intent", analyze_intent)
    workflow.add_node("build_search_plan", build_search_plan)
    workflow.add_node("resolve_stops", resolve_stops)
    workflow.add_node("assemble_itinerary", assemble_itinerary)
    workflow.add_node("check_quality", check_quality)

    workflow.set_entry_point("analyze_intent")
    workflow.add_conditional_edges("analyze_intent", _route_on_error("build_search_plan"), ["build_search_plan", END])
    workflow.add_conditional_edges("build_search_plan", _route_on_error("resolve_stops"), ["resolve_stops", END])
    workflow.add_conditional_edges("resolve_stops", _route_on_error("assemble_itinerary"), ["assemble_itinerary", END])
    workflow.add_edge("assemble_itinerary", "check_quality")
    workflow.add_edge("check_quality", END)

    return workflow


compiled_itinerary_graph = _create_itinerary_workflow().compile()
