"""타임아웃 정책 유틸 테스트."""

from app.core.config import Settings
from app.core.timeout_policy import build_timeout_policy, to_requests_timeout


def test_build_timeout_policy_caps_by_request_timeout() -> None:
    settings = Settings(
        OPENAI_API_KEY="test-key",
        REQUEST_TIMEOUT_SECONDS=20,
        LLM_TIMEOUT_SECONDS=60,
        EXTERNAL_API_TIMEOUT_SECONDS=50,
        STOP_RESOLUTION_TIMEOUT_SECONDS=45,
        GOOGLE_PLACES_TIMEOUT_SECONDS=25,
        TICKETMASTER_TIMEOUT_SECONDS=30,
    )

    policy = build_timeout_policy(settings)

    assert policy.request_timeout_seconds == 20
    assert policy.llm_timeout_seconds == 20
    assert policy.external_api_timeout_seconds == 20
    assert policy.stop_resolution_timeout_seconds == 20
    assert policy.google_places_timeout_seconds == 20
    assert policy.ticketmaster_timeout_seconds == 20


def test_provider_timeouts_are_capped_by_external_timeout() -> None:
    settings = Settings(
        OPENAI_API_KEY="test-key",
        EXTERNAL_API_TIMEOUT_SECONDS=8,
        GOOGLE_PLACES_TIMEOUT_SECONDS=12,
        TICKETMASTER_TIMEOUT_SECONDS=5,
    )

    policy = build_timeout_policy(settings)

    assert policy.google_places_timeout_seconds == 8
    assert policy.ticketmaster_timeout_seconds == 5


def test_non_positive_timeouts_are_raised_to_minimum() -> None:
    policy = build_timeout_policy(Settings(OPENAI_API_KEY="test-key", LLM_TIMEOUT_SECONDS=0))

    assert policy.llm_timeout_seconds == 1


def test_to_requests_timeout_returns_connect_and_read_timeout() -> None:
    connect_timeout, read_timeout = to_requests_timeout(10)

    assert connect_timeout == 3.0
    assert read_timeout == 7.0
