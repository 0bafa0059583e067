"""애플리케이션 진입점 최소 동작 테스트."""

from __future__ import annotations

import importlib

from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.schemas.itinerary import Itinerary
from app.services.itinerary_service import ItineraryPlanningError


def _set_required_env(monkeypatch, **overrides: str) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    for key, value in overrides.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()


def _load_main_module():
    import app.main as main_module

    return importlib.reload(main_module)


def _itinerary(**overrides) -> Itinerary:
    values = {"title": "Test Outing", "description": "A short walk", "quality_score": 1.0}
    values.update(overrides)
    return Itinerary(**values)


def test_health_check_endpoint(monkeypatch) -> None:
    _set_required_env(monkeypatch)
    main_module = _load_main_module()

    client = TestClient(main_module.app)
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "Itinerary Planner AI Server is running"}


def test_create_itinerary_returns_response(monkeypatch) -> None:
    _set_required_env(monkeypatch)
    main_module = _load_main_module()
    captured: dict = {}

    async def _fake_plan(prompt, origin=None, **_services):
        captured["prompt"] = prompt
        captured["origin"] = origin
        return _itinerary(no_events_found=True)

    monkeypatch.setattr("app.api.itinerary.plan_itinerary", _fake_plan)

    client = TestClient(main_module.app)
    response = client.post(
        "/api/v1/itinerary",
        json={"prompt": "rock concert this weekend", "origin": {"lat": 40.7, "lng": -73.9}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["quality_score"] == 1.0
    assert body["no_events_found"] is True
    assert body["itinerary"]["title"] == "Test Outing"
    assert captured["prompt"] == "rock concert this weekend"
    assert captured["origin"].lat == 40.7


def test_create_itinerary_dispatches_days_and_max_stops(monkeypatch) -> None:
    _set_required_env(monkeypatch)
    main_module = _load_main_module()
    calls: list[tuple] = []

    async def _fake_multi_day(prompt, days, origin=None, **_services):
        calls.append(("multi_day", days))
        return _itinerary()

    async def _fake_quick(prompt, origin=None, max_stops=3, **_services):
        calls.append(("quick", max_stops))
        return _itinerary()

    monkeypatch.setattr("app.api.itinerary.plan_multi_day_trip", _fake_multi_day)
    monkeypatch.setattr("app.api.itinerary.plan_quick_trip", _fake_quick)

    client = TestClient(main_module.app)
    client.post("/api/v1/itinerary", json={"prompt": "museums", "days": 3})
    client.post("/api/v1/itinerary", json={"prompt": "coffee", "max_stops": 2})

    assert calls == [("multi_day", 3), ("quick", 2)]


def test_planning_error_returns_422(monkeypatch) -> None:
    _set_required_env(monkeypatch)
    main_module = _load_main_module()

    async def _fake_plan(prompt, origin=None, **_services):
        raise ItineraryPlanningError("검색 플랜에 정거장이 없습니다.")

    monkeypatch.setattr("app.api.itinerary.plan_itinerary", _fake_plan)

    client = TestClient(main_module.app)
    response = client.post("/api/v1/itinerary", json={"prompt": "nothing"})

    assert response.status_code == 422
    assert response.json() == {"success": False, "error": "검색 플랜에 정거장이 없습니다."}


def test_unexpected_error_is_hidden_by_default(monkeypatch) -> None:
    _set_required_env(monkeypatch, EXPOSE_INTERNAL_ERRORS="false")
    main_module = _load_main_module()

    async def _fake_plan(prompt, origin=None, **_services):
        raise RuntimeError("sensitive: internal detail")

    monkeypatch.setattr("app.api.itinerary.plan_itinerary", _fake_plan)

    client = TestClient(main_module.app, raise_server_exceptions=False)
    response = client.post("/api/v1/itinerary", json={"prompt": "coffee"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "내부 서버 오류가 발생했습니다."}


def test_unexpected_error_is_exposed_when_enabled(monkeypatch) -> None:
    _set_required_env(monkeypatch, EXPOSE_INTERNAL_ERRORS="true")
    main_module = _load_main_module()

    async def _fake_plan(prompt, origin=None, **_services):
        raise RuntimeError("sensitive: internal detail")

    monkeypatch.setattr("app.api.itinerary.plan_itinerary", _fake_plan)

    client = TestClient(main_module.app, raise_server_exceptions=False)
    response = client.post("/api/v1/itinerary", json={"prompt": "coffee"})

    assert response.status_code == 500
    assert response.json()["error"] == "sensitive: internal detail"


def test_empty_prompt_is_rejected(monkeypatch) -> None:
    _set_required_env(monkeypatch)
    main_module = _load_main_module()

    client = TestClient(main_module.app)
    response = client.post("/api/v1/itinerary", json={"prompt": ""})

    assert response.status_code == 422
    assert "detail" in response.json()


def test_itinerary_openapi_error_examples(monkeypatch) -> None:
    _set_required_env(monkeypatch)
    main_module = _load_main_module()

    schema = main_module.app.openapi()
    examples = schema["paths"]["/api/v1/itinerary"]["post"]["responses"]["422"]["content"]["application/json"][
        "examples"
    ]

    assert examples["empty_plan"]["value"] == {"success": False, "error": "검색 플랜에 정거장이 없습니다."}


def test_cors_allowlist_from_env(monkeypatch) -> None:
    _set_required_env(
        monkeypatch,
        CORS_ALLOW_ORIGINS="https://example.com",
        CORS_ALLOW_METHODS="GET,POST,OPTIONS",
        CORS_ALLOW_HEADERS="Content-Type",
    )
    main_module = _load_main_module()

    client = TestClient(main_module.app)
    response = client.get("/", headers={"Origin": "https://example.com"})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://example.com"
