"""Decision pipeline and hook protocol encoding.

Fixed stage order, each stage may short-circuit:
  1. Disabled           -> defer
  2. Preset rules       -> allow ("rule") / defer
  3. Decision cache     -> allow ("cached") / defer
  4. No API key         -> defer
  5. Safety evaluator   -> cache the verdict, allow ("AI: ...") / defer

Output format:
  Allow:  {"hookSpecificOutput": {"hookEventName": "PreToolUse",
           "permissionDecision": "allow", "permissionDecisionReason": "..."}}
  Defer:  {}  (Claude Code shows its normal permission prompt)

There is no deny output. Rule denials, cached denials, evaluator denials and
every error look the same to Claude Code: an empty response.
"""

import json
import logging
import time
from typing import Callable, Optional

from ccyolo import rules
from ccyolo.cache import DecisionCache
from ccyolo.config import Config
from ccyolo.errors import CcyoloError, ConfigurationError
from ccyolo.evaluator import SafetyEvaluator
from ccyolo.models import DEFER, Allow, Decision, Defer, Operation
from ccyolo.normalize import redact, summarize_operation
from ccyolo.profiles import Profile

logger = logging.getLogger(__name__)

DEFAULT_EVENT = "PreToolUse"
REASON_TAG = "[ccyolo]"

EvaluatorFactory = Callable[[str, str], SafetyEvaluator]


def default_evaluator_factory(api_key: str, model: str) -> SafetyEvaluator:
    return SafetyEvaluator(api_key=api_key, model=model)


class Pipeline:
    """Layered allow/defer decision for one operation."""

    def __init__(
        self,
        profile: Profile,
        cache: DecisionCache,
        config: Config,
        api_key: str = "",
        evaluator_factory: EvaluatorFactory = default_evaluator_factory,
    ):
        self.profile = profile
        self.cache = cache
        self.config = config
        self.api_key = api_key
        self.evaluator_factory = evaluator_factory

    def decide(self, operation: Operation) -> Decision:
        """Run every stage in order. Never raises."""
        start = time.time()
        try:
            decision = self._decide(operation)
        except Exception:
            logger.exception("unexpected error, deferring")
            decision = DEFER
        elapsed = time.time() - start
        if isinstance(decision, Allow):
            logger.info("DECISION: ALLOW (%s) (%.3fs)", decision.reason, elapsed)
        else:
            logger.info("DECISION: ASK USER (%.3fs)", elapsed)
        return decision

    def _decide(self, operation: Operation) -> Decision:
        if not self.config.enabled:
            logger.debug("disabled, passing through")
            return DEFER

        rule_result = rules.evaluate(operation, self.profile)
        if rule_result is True:
            logger.debug("rule ALLOW")
            return Allow("rule")
        if rule_result is False:
            logger.debug("rule DENY match")
            return DEFER

        cached = self.cache.get(operation)
        if cached is True:
            logger.debug("cache ALLOW")
            return Allow("cached")
        if cached is False:
            logger.debug("cache DENY")
            return DEFER

        try:
            verdict = self._evaluate(operation)
        except ConfigurationError as e:
            logger.info("no evaluation: %s", e)
            return DEFER
        except CcyoloError as e:
            logger.warning("evaluator error, not caching: %s", e)
            return DEFER

        try:
            self.cache.set(operation, verdict.approve)
        except OSError as e:
            logger.warning("cache write failed: %s", e)

        if verdict.approve:
            return Allow(f"AI: {verdict.reason}")
        logger.debug("evaluator DENY: %s", verdict.reason)
        return DEFER

    def _evaluate(self, operation: Operation):
        if not self.api_key:
            raise ConfigurationError("no API key configured")
        logger.debug("calling Claude API (%s)...", self.config.model)
        evaluator = self.evaluator_factory(self.api_key, self.config.model)
        return evaluator.evaluate_safety(self.profile.prompt, operation.tool_name, operation.tool_input)


# --- Protocol encoding ---

def encode_response(decision: Decision, operation: Operation, event_name: str = DEFAULT_EVENT) -> dict:
    """Hook response object. Defer is an empty object.

    >>> encode_response(Defer(), Operation("Bash", {"command": "ls"}))
    {}
    >>> encode_response(Allow("rule"), Operation("Read", {"file_path": "/a/b.go"}))["hookSpecificOutput"]["permissionDecisionReason"]
    '[ccyolo] Read: .../b.go (rule)'
    """
    if not isinstance(decision, Allow):
        return {}
    summary = summarize_operation(operation.tool_name, operation.tool_input)
    return {
        "hookSpecificOutput": {
            "hookEventName": event_name,
            "permissionDecision": "allow",
            "permissionDecisionReason": f"{REASON_TAG} {summary} ({decision.reason})",
        }
    }


def parse_request(raw: str, profile_id: str) -> tuple[Optional[Operation], str]:
    """Parse one hook request line into (operation, event name).

    Malformed input gives (None, default event).
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("parse error: %s", e)
        return None, DEFAULT_EVENT
    if not isinstance(data, dict):
        logger.warning("parse error: request is not an object")
        return None, DEFAULT_EVENT

    event_name = data.get("hook_event_name")
    if not isinstance(event_name, str) or not event_name:
        event_name = DEFAULT_EVENT

    tool_name = data.get("tool_name")
    tool_input = data.get("tool_input")
    if not isinstance(tool_name, str) or not tool_name:
        logger.warning("parse error: missing tool_name")
        return None, event_name
    if not isinstance(tool_input, dict):
        tool_input = {}

    return Operation(tool_name=tool_name, tool_input=tool_input, profile_id=profile_id), event_name


def handle_request(raw: str, pipeline: Pipeline) -> str:
    """One request/response exchange. Always returns a JSON line."""
    operation, event_name = parse_request(raw, pipeline.profile.name)
    if operation is None:
        return "{}"

    logger.info("EVALUATING [%s]: %s", operation.tool_name, redact(summarize_operation(operation.tool_name, operation.tool_input)))
    decision = pipeline.decide(operation)
    return json.dumps(encode_response(decision, operation, event_name))
