"""Shared test fixtures."""

import pytest

from src.pm_pricing.domain.ledger import PricingLedger
from src.pm_pricing.infrastructure.memory import InMemoryBackend, InMemoryTradeSink


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def sink() -> InMemoryTradeSink:
    return InMemoryTradeSink()


@pytest.fixture
def ledger(backend: InMemoryBackend, sink: InMemoryTradeSink) -> PricingLedger:
    return PricingLedger(backend, sink)
