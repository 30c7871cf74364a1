"""Claude Code permission hook entry point.

Reads one JSON request from stdin, writes one JSON response line to stdout,
exits 0. Any failure prints ``{}`` so Claude Code falls back to its normal
permission prompt (fail-open to the human, never to auto-approve).
"""

import json
import logging
import os
import sys
from typing import TextIO

from ccyolo.cache import DecisionCache, FileCacheStore
from ccyolo.config import Config, cache_dir, load_config, log_path, presets_dir, resolve_api_key
from ccyolo.log import setup_hook_logging
from ccyolo.pipeline import Pipeline, handle_request
from ccyolo.profiles import ProfileStore, get_profile

logger = logging.getLogger(__name__)

DEBUG_ENV = "CCYOLO_DEBUG"


def _session_id(raw: str) -> str:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return ""
    sid = data.get("session_id", "") if isinstance(data, dict) else ""
    return sid if isinstance(sid, str) else ""


def build_pipeline(config: Config) -> Pipeline:
    """Wire preset, cache and API key for one invocation."""
    profile = get_profile(config.preset, ProfileStore(presets_dir()))
    cache = DecisionCache(FileCacheStore(cache_dir()), ttl=config.cache_ttl)
    return Pipeline(profile, cache, config, api_key=resolve_api_key(config))


def run(stdin: TextIO, stdout: TextIO) -> int:
    """Handle one request. Always writes a response and returns 0."""
    response = "{}"
    try:
        raw = stdin.read()
        config = load_config()
        setup_hook_logging(
            config.logging,
            log_path(),
            session_id=_session_id(raw),
            debug=os.environ.get(DEBUG_ENV, "") == "1",
        )
        logger.debug("=== hook called === preset=%s enabled=%s", config.preset, config.enabled)
        response = handle_request(raw, build_pipeline(config))
    except Exception:
        logger.exception("hook failed, deferring")
        response = "{}"
    stdout.write(response + "\n")
    stdout.flush()
    return 0


def main():
    sys.exit(run(sys.stdin, sys.stdout))


if __name__ == "__main__":
    main()
