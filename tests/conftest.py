"""Shared fixtures for ccyolo tests."""

import logging

import pytest

from ccyolo.cache import DecisionCache, MemoryCacheStore
from ccyolo.config import Config
from ccyolo.log import ROOT_LOGGER


@pytest.fixture(autouse=True)
def ccyolo_home(tmp_path, monkeypatch):
    """Point CCYOLO_HOME at a temp dir and strip real credentials."""
    home = tmp_path / "ccyolo-home"
    monkeypatch.setenv("CCYOLO_HOME", str(home))
    monkeypatch.delenv("CCYOLO_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("CCYOLO_DEBUG", raising=False)
    return home


@pytest.fixture(autouse=True)
def reset_ccyolo_logger():
    """The hook reconfigures the ccyolo logger; put it back after each test."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    """DecisionCache on an in-memory store with a controllable clock."""
    return DecisionCache(MemoryCacheStore(), ttl=60, clock=clock)


@pytest.fixture
def config():
    return Config()

