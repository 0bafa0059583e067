"""일정 그래프 노드 모음."""

from app.graph.itinerary.nodes.intent import analyze_intent
from app.graph.itinerary.nodes.plan import build_search_plan
from app.graph.itinerary.nodes.quality import check_quality
from app.graph.itinerary.nodes.resolve import resolve_stops
from app.graph.itinerary.nodes.route import assemble_itinerary

__all__ = ["analyze_intent", "build_search_plan", "resolve_stops", "assemble_itinerary", "check_quality"]
