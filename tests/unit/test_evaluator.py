"""Unit tests for the safety evaluator client.

No network: the Anthropic client is a MagicMock and SDK errors are built
on hand-made httpx requests/responses.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from ccyolo.errors import (
    CredentialError,
    CredentialPermissionError,
    InvalidCredentialError,
    ProtocolError,
    TransportError,
)
from ccyolo.evaluator import (
    MAX_TOKENS,
    SafetyEvaluator,
    Verdict,
    build_prompt,
    parse_verdict,
    validate_credential,
)

API_URL = "https://api.anthropic.com/v1/messages"


def _request():
    return httpx.Request("POST", API_URL)


def status_error(cls, status, message=None):
    body = {"type": "error", "error": {"type": "x", "message": message}} if message else None
    response = httpx.Response(status, request=_request())
    return cls(message or f"status {status}", response=response, body=body)


def text_response(text):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def make_client(text=None, error=None):
    client = MagicMock()
    if error is not None:
        client.messages.create.side_effect = error
    else:
        client.messages.create.return_value = text_response(text)
    return client


# ---------------------------------------------------------------------------
# parse_verdict
# ---------------------------------------------------------------------------

class TestParseVerdict:
    """Tests for the layered answer parser."""

    def test_plain_json(self):
        assert parse_verdict('{"approve": true, "reason": "read-only"}') == Verdict(True, "read-only")

    def test_plain_json_with_whitespace(self):
        assert parse_verdict('\n  {"approve": false, "reason": "no"}  \n') == Verdict(False, "no")

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"approve": false, "reason": "deletes data"}\n```'
        assert parse_verdict(text) == Verdict(False, "deletes data")

    def test_fenced_without_language(self):
        text = '```\n{"approve": true, "reason": "fine"}\n```'
        assert parse_verdict(text) == Verdict(True, "fine")

    def test_text_fallback(self):
        text = 'I think "approve": false, since it touches prod'
        assert parse_verdict(text) == Verdict(False, "parsed from text")

    @pytest.mark.parametrize("text, approve", [
        ('First "approve": false, then on reflection "approve": true', False),
        ('First "approve": true, then on reflection "approve": false', True),
    ])
    def test_text_fallback_first_assignment_wins(self, text, approve):
        assert parse_verdict(text) == Verdict(approve, "parsed from text")

    def test_missing_reason_defaults_empty(self):
        assert parse_verdict('{"approve": true}') == Verdict(True, "")

    def test_string_approve_is_not_a_boolean(self):
        with pytest.raises(ProtocolError):
            parse_verdict('{"approve": "yes", "reason": "sure"}')

    def test_garbage_raises_with_excerpt(self):
        text = "I cannot help with that. " * 10
        with pytest.raises(ProtocolError) as exc_info:
            parse_verdict(text)
        assert exc_info.value.excerpt == text.strip()[:100]
        assert len(exc_info.value.excerpt) == 100

    def test_empty_raises(self):
        with pytest.raises(ProtocolError):
            parse_verdict("")

    def test_json_array_not_accepted(self):
        with pytest.raises(ProtocolError):
            parse_verdict("[true]")


class TestBuildPrompt:
    """Tests for prompt assembly."""

    def test_contains_policy_tool_and_input(self):
        prompt = build_prompt("POLICY", "Bash", {"command": "ls"})
        assert prompt.startswith("POLICY\n\n")
        assert "Tool: Bash" in prompt
        assert '"command": "ls"' in prompt
        assert prompt.rstrip().endswith('"reason": "one sentence"}')


# ---------------------------------------------------------------------------
# SafetyEvaluator
# ---------------------------------------------------------------------------

class TestSafetyEvaluator:
    """Tests for one evaluator round trip."""

    def test_approve(self):
        client = make_client('{"approve": true, "reason": "safe build"}')
        evaluator = SafetyEvaluator("key", model="m", client=client)

        verdict = evaluator.evaluate_safety("policy", "Bash", {"command": "go build"})

        assert verdict == Verdict(True, "safe build")
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "m"
        assert kwargs["max_tokens"] == MAX_TOKENS
        assert "go build" in kwargs["messages"][0]["content"]

    def test_timeout_is_transport_error(self):
        client = make_client(error=anthropic.APITimeoutError(request=_request()))
        with pytest.raises(TransportError):
            SafetyEvaluator("key", client=client).evaluate_safety("p", "Bash", {"command": "ls"})

    def test_connection_error_is_transport_error(self):
        client = make_client(error=anthropic.APIConnectionError(request=_request()))
        with pytest.raises(TransportError):
            SafetyEvaluator("key", client=client).complete("hi")

    def test_status_error_uses_server_message(self):
        error = status_error(anthropic.InternalServerError, 500, "overloaded")
        client = make_client(error=error)
        with pytest.raises(TransportError) as exc_info:
            SafetyEvaluator("key", client=client).complete("hi")
        assert str(exc_info.value) == "overloaded"
        assert exc_info.value.status_code == 500

    def test_status_error_without_body(self):
        client = make_client(error=status_error(anthropic.RateLimitError, 429))
        with pytest.raises(TransportError) as exc_info:
            SafetyEvaluator("key", client=client).complete("hi")
        assert str(exc_info.value) == "API error (status 429)"

    def test_empty_content_is_protocol_error(self):
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(content=[])
        with pytest.raises(ProtocolError):
            SafetyEvaluator("key", client=client).complete("hi")

    def test_unparseable_answer_is_protocol_error(self):
        client = make_client("Sorry, I can't decide.")
        with pytest.raises(ProtocolError):
            SafetyEvaluator("key", client=client).evaluate_safety("p", "Bash", {"command": "ls"})

    def test_default_client_has_no_retries(self):
        with patch("ccyolo.evaluator.anthropic.Anthropic") as mock_cls:
            SafetyEvaluator("sk-test", timeout=10.0)
        mock_cls.assert_called_once_with(api_key="sk-test", timeout=10.0, max_retries=0)


# ---------------------------------------------------------------------------
# validate_credential
# ---------------------------------------------------------------------------

class TestValidateCredential:
    """Tests for API key validation status mapping."""

    def test_ok(self):
        client = make_client("hi")
        assert validate_credential("key", client=client) is None

    def test_401_invalid(self):
        client = make_client(error=status_error(anthropic.AuthenticationError, 401, "invalid x-api-key"))
        with pytest.raises(InvalidCredentialError):
            validate_credential("key", client=client)

    def test_403_permission(self):
        client = make_client(error=status_error(anthropic.PermissionDeniedError, 403, "forbidden"))
        with pytest.raises(CredentialPermissionError):
            validate_credential("key", client=client)

    def test_other_status_carries_message(self):
        client = make_client(error=status_error(anthropic.InternalServerError, 500, "overloaded"))
        with pytest.raises(CredentialError) as exc_info:
            validate_credential("key", client=client)
        assert not isinstance(exc_info.value, (InvalidCredentialError, CredentialPermissionError))
        assert "overloaded" in str(exc_info.value)

    def test_network_failure(self):
        client = make_client(error=anthropic.APIConnectionError(request=_request()))
        with pytest.raises(TransportError):
            validate_credential("key", client=client)
