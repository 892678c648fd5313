"""
Gateway Evals -- admission control in front of the completion service.

CODE-BASED graders using FastAPI's TestClient with a fake completion backend.
Admission order: method -> origin -> validation -> rate limit -> upstream.
"""

import pytest
from fastapi.testclient import TestClient

from magi.api.gateway import create_app
from magi.api.middleware.rate_limit import SlidingWindowRateLimiter
from magi.config import GatewaySettings
from magi.llm import CompletionClient
from magi.llm.errors import CompletionConfigError, MalformedUpstreamResponse, UpstreamUnavailable

VALID_BODY = {
    "messages": [
        {"role": "system", "content": "You are a judge."},
        {"role": "user", "content": "Approve the budget?"},
    ],
    "model": "gpt-5.1",
    "reasoningEffort": "low",
}
ALLOWED_ORIGIN = "https://magi.example.com"


class BrokenStore:
    async def hit(self, key, now, window_seconds, limit):
        raise ConnectionError("store down")


def _client(backend, limit=50, limiter=None, **settings):
    settings.setdefault("allowed_origins", [ALLOWED_ORIGIN])
    gateway_settings = GatewaySettings(rate_limit=limit, **settings)
    app = create_app(
        settings=gateway_settings,
        completion_client=backend,
        rate_limiter=limiter or SlidingWindowRateLimiter(limit=limit),
    )
    return TestClient(app)


class TestHappyPath:
    """Eval: Is a valid request forwarded and its JSON returned unchanged?"""

    def test_passthrough(self, gateway_backend):
        backend = gateway_backend(response={"decision": "APPROVE", "reason": "fine"})
        response = _client(backend).post("/analyze", json=VALID_BODY, headers={"Origin": ALLOWED_ORIGIN})

        assert response.status_code == 200
        assert response.json() == {"decision": "APPROVE", "reason": "fine"}
        assert response.headers["X-RateLimit-Limit"] == "50"
        assert response.headers["X-RateLimit-Remaining"] == "49"
        assert "X-RateLimit-Reset" in response.headers
        assert response.headers["Access-Control-Allow-Origin"] == ALLOWED_ORIGIN

        call = backend.calls[0]
        assert call["model"] == "gpt-5.1"
        assert call["reasoning_effort"] == "low"
        assert call["messages"][1] == {"role": "user", "content": "Approve the budget?"}

    def test_defaults_applied(self, gateway_backend):
        backend = gateway_backend()
        _client(backend).post("/analyze", json={"messages": [{"role": "user", "content": "hi"}]})

        assert backend.calls[0]["model"] == "gpt-5.1"
        assert backend.calls[0]["reasoning_effort"] == "none"

    @pytest.mark.parametrize(
        "field, expected",
        [("model", ("gpt-5.1", "low")), ("reasoningEffort", ("gpt-5.1", "none"))],
    )
    def test_null_model_or_effort_means_default(self, gateway_backend, field, expected):
        backend = gateway_backend()
        body = {**VALID_BODY, field: None}
        response = _client(backend).post("/analyze", json=body)

        assert response.status_code == 200
        assert (backend.calls[0]["model"], backend.calls[0]["reasoning_effort"]) == expected

    def test_health_reports_admission_policy(self, gateway_backend):
        response = _client(gateway_backend(), limit=7).get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["rate_limit"] == 7
        assert body["rate_limit_fail_open"] is True
        assert body["allow_missing_origin"] is True

    def test_ready_with_configured_client(self):
        client = CompletionClient(api_key="sk-test", model="gpt-4o")
        response = _client(client).get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"ready": True, "checks": {"completion_client_configured": True}}

    def test_not_ready_without_api_key(self):
        response = _client(CompletionClient(api_key="")).get("/health/ready")

        assert response.status_code == 503
        assert response.json()["ready"] is False

    def test_missing_key_through_real_client(self):
        response = _client(CompletionClient(api_key="")).post("/analyze", json=VALID_BODY)

        assert response.status_code == 500
        assert response.json() == {"error": "Server configuration error: API Key missing"}


class TestMethodAndOrigin:
    """Eval: Are wrong methods and disallowed origins rejected before any work?"""

    @pytest.mark.parametrize("method", ["get", "put", "delete"])
    def test_wrong_method(self, gateway_backend, method):
        backend = gateway_backend()
        response = getattr(_client(backend), method)("/analyze")

        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}
        assert backend.calls == []

    def test_disallowed_origin(self, gateway_backend):
        backend = gateway_backend()
        response = _client(backend).post(
            "/analyze", json=VALID_BODY, headers={"Origin": "https://evil.example"}
        )

        assert response.status_code == 403
        assert "error" in response.json()
        assert "Access-Control-Allow-Origin" not in response.headers
        assert backend.calls == []

    def test_origin_checked_before_validation(self, gateway_backend):
        response = _client(gateway_backend()).post(
            "/analyze", json={"messages": []}, headers={"Origin": "https://evil.example"}
        )
        assert response.status_code == 403

    def test_loopback_origin_allowed(self, gateway_backend):
        response = _client(gateway_backend()).post(
            "/analyze", json=VALID_BODY, headers={"Origin": "http://localhost:5173"}
        )
        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_origin_regex(self, gateway_backend):
        client = _client(gateway_backend(), allowed_origin_regex=r"https://[a-z0-9-]+\.preview\.example\.com")
        ok = client.post("/analyze", json=VALID_BODY, headers={"Origin": "https://pr-12.preview.example.com"})
        bad = client.post("/analyze", json=VALID_BODY, headers={"Origin": "https://preview.example.com.evil"})

        assert ok.status_code == 200
        assert bad.status_code == 403

    def test_missing_origin_admitted_by_default(self, gateway_backend):
        response = _client(gateway_backend()).post("/analyze", json=VALID_BODY)
        assert response.status_code == 200
        assert "Access-Control-Allow-Origin" not in response.headers

    def test_missing_origin_rejected_when_configured(self, gateway_backend):
        response = _client(gateway_backend(), allow_missing_origin=False).post("/analyze", json=VALID_BODY)
        assert response.status_code == 403

    def test_preflight(self, gateway_backend):
        response = _client(gateway_backend()).options(
            "/analyze",
            headers={"Origin": ALLOWED_ORIGIN, "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == 204
        assert response.headers["Access-Control-Allow-Origin"] == ALLOWED_ORIGIN
        assert "POST" in response.headers["Access-Control-Allow-Methods"]
        assert "Content-Type" in response.headers["Access-Control-Allow-Headers"]

    def test_preflight_from_disallowed_origin_gets_no_cors(self, gateway_backend):
        response = _client(gateway_backend()).options("/analyze", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in response.headers


class TestValidation:
    """Eval: Are malformed payloads rejected with itemized details?"""

    def _details(self, backend, **kwargs):
        response = _client(backend).post("/analyze", **kwargs)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        return body["details"]

    def test_invalid_json(self, gateway_backend):
        details = self._details(
            gateway_backend(), content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert details == ["Request body must be valid JSON"]

    def test_empty_messages(self, gateway_backend):
        assert "messages must be a non-empty array" in self._details(gateway_backend(), json={"messages": []})

    def test_too_many_messages(self, gateway_backend):
        body = {"messages": [{"role": "user", "content": "x"}] * 51}
        assert "Too many messages (max 50)" in self._details(gateway_backend(), json=body)

    def test_payload_too_large(self, gateway_backend):
        body = {"messages": [{"role": "user", "content": "x" * (60 * 1024)}]}
        assert "Payload too large" in self._details(gateway_backend(), json=body)

    def test_bad_role_and_content(self, gateway_backend):
        body = {"messages": [{"role": "robot", "content": 5}]}
        details = self._details(gateway_backend(), json=body)
        assert any("messages[0].role" in d for d in details)
        assert any("messages[0].content" in d for d in details)

    def test_invalid_model_and_effort_reported_together(self, gateway_backend):
        body = {**VALID_BODY, "model": "gpt-2", "reasoningEffort": "extreme"}
        details = self._details(gateway_backend(), json=body)
        assert "Invalid model" in details
        assert "Invalid reasoningEffort" in details

    def test_invalid_requests_do_not_reach_upstream(self, gateway_backend):
        backend = gateway_backend()
        self._details(backend, json={"messages": []})
        assert backend.calls == []


class TestRateLimit:
    """Eval: Is the per-caller sliding window enforced with metadata headers?"""

    def test_limit_exceeded(self, gateway_backend):
        backend = gateway_backend()
        client = _client(backend, limit=2)

        assert client.post("/analyze", json=VALID_BODY).status_code == 200
        assert client.post("/analyze", json=VALID_BODY).status_code == 200
        blocked = client.post("/analyze", json=VALID_BODY)

        assert blocked.status_code == 429
        assert blocked.json() == {"error": "Too many requests"}
        assert blocked.headers["X-RateLimit-Limit"] == "2"
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert len(backend.calls) == 2

    def test_rejected_requests_do_not_consume_quota(self, gateway_backend):
        client = _client(gateway_backend(), limit=2)
        for _ in range(3):
            assert client.post("/analyze", json={"messages": []}).status_code == 400

        assert client.post("/analyze", json=VALID_BODY).status_code == 200
        assert client.post("/analyze", json=VALID_BODY).status_code == 200

    def test_fail_open_on_store_error(self, gateway_backend):
        limiter = SlidingWindowRateLimiter(store=BrokenStore(), limit=5, fail_open=True)
        response = _client(gateway_backend(), limiter=limiter).post("/analyze", json=VALID_BODY)
        assert response.status_code == 200

    def test_fail_closed_on_store_error(self, gateway_backend):
        backend = gateway_backend()
        limiter = SlidingWindowRateLimiter(store=BrokenStore(), limit=5, fail_open=False)
        response = _client(backend, limiter=limiter).post("/analyze", json=VALID_BODY)

        assert response.status_code == 503
        assert backend.calls == []


class TestUpstreamFailures:
    """Eval: Are upstream failures mapped to generic errors without leaking details?"""

    def test_malformed_upstream(self, gateway_backend):
        backend = gateway_backend(error=MalformedUpstreamResponse("secret parse detail"))
        response = _client(backend).post("/analyze", json=VALID_BODY)

        assert response.status_code == 502
        assert response.json() == {"error": "Invalid response from AI"}
        assert "X-RateLimit-Limit" in response.headers

    def test_upstream_http_error(self, gateway_backend):
        backend = gateway_backend(error=UpstreamUnavailable("upstream said 401 sk-secret", status_code=401))
        response = _client(backend).post("/analyze", json=VALID_BODY)

        assert response.status_code == 502
        assert "sk-secret" not in response.text

    def test_upstream_unreachable(self, gateway_backend):
        backend = gateway_backend(error=UpstreamUnavailable("connection refused to 10.0.0.7"))
        response = _client(backend).post("/analyze", json=VALID_BODY)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_missing_api_key(self, gateway_backend):
        backend = gateway_backend(error=CompletionConfigError("no key"))
        response = _client(backend).post("/analyze", json=VALID_BODY)

        assert response.status_code == 500
        assert response.json() == {"error": "Server configuration error: API Key missing"}

    def test_unexpected_exception(self, gateway_backend):
        backend = gateway_backend(error=RuntimeError("stack trace material"))
        response = _client(backend).post("/analyze", json=VALID_BODY)

        assert response.status_code == 500
        assert "stack trace" not in response.text
