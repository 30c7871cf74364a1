"""Safety evaluator client.

Sends one operation to Claude with the preset's policy prompt and reads a
verdict back. Model output is untrusted, so parsing falls through several
strategies before giving up:

  1. The whole answer as JSON
  2. The body of a fenced code block as JSON
  3. A text search for an ``"approve": true|false`` assignment

One call per evaluation: fixed 10s timeout, no retries. Every failure is
raised as a CcyoloError subclass so the caller can defer.
"""

import json
import logging
import re
from dataclasses import dataclass

import anthropic

from ccyolo.errors import (
    CredentialError,
    CredentialPermissionError,
    InvalidCredentialError,
    ProtocolError,
    TransportError,
)

logger = logging.getLogger(__name__)

EVALUATOR_TIMEOUT = 10.0
MAX_TOKENS = 150
VALIDATION_MODEL = "claude-haiku-4-5-20251001"
EXCERPT_LENGTH = 100

RESPONSE_INSTRUCTION = 'Respond with ONLY valid JSON: {"approve": true/false, "reason": "one sentence"}'

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
# Scanned with .search, so the first assignment in the reply wins
_APPROVE_TEXT_RE = re.compile(r'"approve"\s*:\s*(true|false)')


@dataclass(frozen=True)
class Verdict:
    approve: bool
    reason: str


def build_prompt(policy_prompt: str, tool_name: str, tool_input: dict) -> str:
    """Embed the policy, tool name and pretty-printed input in one prompt."""
    input_json = json.dumps(tool_input, indent=2, ensure_ascii=False, default=str)
    return (
        f"{policy_prompt}\n\n"
        f"Tool: {tool_name}\n"
        f"Input: {input_json}\n\n"
        f"{RESPONSE_INSTRUCTION}"
    )


def _verdict_from_json(text: str) -> Verdict | None:
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(parsed, dict):
        return None
    approve = parsed.get("approve")
    # Only a real JSON boolean counts; "true" strings do not approve
    if not isinstance(approve, bool):
        return None
    reason = parsed.get("reason", "")
    return Verdict(approve=approve, reason=reason if isinstance(reason, str) else str(reason))


def parse_verdict(text: str) -> Verdict:
    """Parse the evaluator's freeform answer into a Verdict.

    >>> parse_verdict('{"approve": true, "reason": "read-only"}')
    Verdict(approve=True, reason='read-only')
    >>> parse_verdict('```json\\n{"approve": false, "reason": "destructive"}\\n```')
    Verdict(approve=False, reason='destructive')
    >>> parse_verdict('Sure! "approve": true because it is fine')
    Verdict(approve=True, reason='parsed from text')
    """
    stripped = (text or "").strip()

    verdict = _verdict_from_json(stripped)
    if verdict is not None:
        return verdict

    fence = _FENCE_RE.search(stripped)
    if fence:
        verdict = _verdict_from_json(fence.group(1))
        if verdict is not None:
            return verdict

    match = _APPROVE_TEXT_RE.search(stripped)
    if match:
        return Verdict(approve=match.group(1) == "true", reason="parsed from text")

    excerpt = stripped[:EXCERPT_LENGTH]
    raise ProtocolError(f"could not parse response: {excerpt}", excerpt=excerpt)


def _status_message(error: anthropic.APIStatusError) -> str:
    """Server-reported message from an error body, or a generic status line."""
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        detail = body.get("error")
        if isinstance(detail, dict) and isinstance(detail.get("message"), str):
            return detail["message"]
    return f"API error (status {error.status_code})"


def _make_client(api_key: str, timeout: float) -> anthropic.Anthropic:
    return anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)


class SafetyEvaluator:
    """Claude-backed safety judge for a single operation."""

    def __init__(
        self,
        api_key: str,
        model: str = VALIDATION_MODEL,
        timeout: float = EVALUATOR_TIMEOUT,
        client: anthropic.Anthropic | None = None,
    ):
        self.model = model
        self.client = client or _make_client(api_key, timeout)

    def complete(self, prompt: str) -> str:
        """Send one prompt, return the first text block of the answer."""
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise TransportError(f"evaluator timed out: {e}") from e
        except anthropic.APIConnectionError as e:
            raise TransportError(f"connection failed: {e}") from e
        except anthropic.APIStatusError as e:
            raise TransportError(_status_message(e), status_code=e.status_code) from e

        for block in response.content or []:
            text = getattr(block, "text", None)
            if isinstance(text, str):
                return text
        raise ProtocolError("empty response")

    def evaluate_safety(self, prompt: str, tool_name: str, tool_input: dict) -> Verdict:
        """Ask Claude whether the operation is safe under ``prompt``."""
        answer = self.complete(build_prompt(prompt, tool_name, tool_input))
        logger.debug("evaluator raw answer: %s", answer.strip()[:500])
        return parse_verdict(answer)


def validate_credential(
    api_key: str,
    model: str = VALIDATION_MODEL,
    client: anthropic.Anthropic | None = None,
) -> None:
    """Check an API key with one minimal request. Raises on failure.

    401 -> InvalidCredentialError, 403 -> CredentialPermissionError,
    other >= 400 -> CredentialError, network -> TransportError.
    """
    client = client or _make_client(api_key, EVALUATOR_TIMEOUT)
    try:
        client.messages.create(
            model=model,
            max_tokens=1,
            messages=[{"role": "user", "content": "hi"}],
        )
    except anthropic.AuthenticationError as e:
        raise InvalidCredentialError("invalid API key") from e
    except anthropic.PermissionDeniedError as e:
        raise CredentialPermissionError("API key doesn't have permission") from e
    except anthropic.APIStatusError as e:
        raise CredentialError(_status_message(e)) from e
    except anthropic.APIConnectionError as e:
        raise TransportError(f"connection failed: {e}") from e
