"""
Security Evals -- boundary validation and the origin policy.

CODE-BASED graders: deterministic, no network, fast.
"""

import pytest

from magi.api.errors import OriginNotAllowed
from magi.api.middleware.origin import OriginPolicy
from magi.config import ALLOWED_MODELS, REASONING_EFFORTS, GatewaySettings
from magi.security import (
    ValidationError,
    collect_analyze_errors,
    serialized_size,
    validate_in_choices,
    validate_length,
    validate_not_empty,
)


def _errors(body, **kwargs):
    return collect_analyze_errors(body, ALLOWED_MODELS, REASONING_EFFORTS, **kwargs)


class TestInputValidation:
    """Eval: Do validators reject bad input at boundaries?"""

    def test_not_empty(self):
        assert validate_not_empty("  topic ") == "topic"
        for value in ("", "   ", None):
            with pytest.raises(ValidationError):
                validate_not_empty(value, "topic")

    def test_length(self):
        assert validate_length("abc", max_length=3) == "abc"
        with pytest.raises(ValidationError, match="at most 3"):
            validate_length("abcd", "topic", max_length=3)

    def test_choices(self):
        assert validate_in_choices("low", REASONING_EFFORTS) == "low"
        with pytest.raises(ValidationError):
            validate_in_choices("extreme", REASONING_EFFORTS, "effort")

    def test_serialized_size_counts_utf8_bytes(self):
        assert serialized_size({"a": "é"}) == len('{"a":"é"}'.encode("utf-8"))


class TestAnalyzePayload:
    """Eval: Does the /analyze validator report every problem at once?"""

    def test_valid_payload(self):
        body = {"messages": [{"role": "user", "content": "hi"}], "model": "gpt-4o", "reasoningEffort": "none"}
        assert _errors(body) == []

    def test_non_object_body(self):
        assert _errors(["messages"]) == ["Request body must be a JSON object"]

    def test_missing_messages(self):
        assert _errors({}) == ["messages must be a non-empty array"]

    def test_message_limit_is_inclusive(self):
        fifty = {"messages": [{"role": "user", "content": "x"}] * 50}
        assert _errors(fifty) == []
        fifty_one = {"messages": [{"role": "user", "content": "x"}] * 51}
        assert _errors(fifty_one) == ["Too many messages (max 50)"]

    def test_payload_boundary(self):
        body = {"messages": [{"role": "user", "content": ""}]}
        overhead = serialized_size(body)
        at_limit = {"messages": [{"role": "user", "content": "x" * (50 * 1024 - overhead)}]}
        over = {"messages": [{"role": "user", "content": "x" * (50 * 1024 - overhead + 1)}]}

        assert _errors(at_limit) == []
        assert _errors(over) == ["Payload too large"]

    def test_multiple_problems(self):
        body = {
            "messages": [{"role": "admin", "content": "x"}, "not an object"],
            "model": "gpt-2",
            "reasoningEffort": "max",
        }
        errors = _errors(body)
        assert "messages[0].role must be one of: system, user, assistant" in errors
        assert "messages[1] must be an object" in errors
        assert "Invalid model" in errors
        assert "Invalid reasoningEffort" in errors


class TestOriginPolicy:
    """Eval: Are only allow-listed, pattern-matched or loopback origins admitted?"""

    def _policy(self, **kwargs):
        kwargs.setdefault("allowed_origins", ["https://magi.example.com"])
        return OriginPolicy(GatewaySettings(**kwargs))

    def test_allow_list(self):
        policy = self._policy()
        assert policy.is_allowed("https://magi.example.com")
        assert policy.is_allowed("https://magi.example.com/")
        assert not policy.is_allowed("https://magi.example.com.evil.io")
        assert not policy.is_allowed("http://magi.example.com")

    @pytest.mark.parametrize("origin", ["http://localhost", "http://localhost:3000", "http://127.0.0.1:8080", "http://[::1]:5000"])
    def test_loopback(self, origin):
        assert self._policy().is_allowed(origin)

    @pytest.mark.parametrize("origin", ["http://localhost.evil.com", "http://127.0.0.2", "null"])
    def test_loopback_lookalikes(self, origin):
        assert not self._policy().is_allowed(origin)

    def test_missing_origin_policy(self):
        self._policy().check(None)
        with pytest.raises(OriginNotAllowed):
            self._policy(allow_missing_origin=False).check(None)

    def test_cors_headers_only_for_allowed(self):
        policy = self._policy()
        assert policy.cors_headers("https://magi.example.com")["Access-Control-Allow-Origin"] == "https://magi.example.com"
        assert policy.cors_headers("https://evil.example") == {}
        assert policy.cors_headers(None) == {}
