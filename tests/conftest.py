"""Shared fixtures for the family fund tests."""

from datetime import datetime, timezone

import pytest

from family_fund.models.fund import FundState


FIXED_NOW = datetime(2024, 6, 15, 10, 30, tzinfo=timezone.utc)

MUMMY_ID = "1"
VAIBHAV_ID = "2"


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def state() -> FundState:
    """Fresh fund: Mummy 200000/200000, Vaibhav 100000/100000."""
    return FundState.baseline(now=FIXED_NOW)


def normalized(state: FundState) -> dict:
    """Document form of a state with every collection sorted by id."""
    document = state.to_document()
    return {
        key: sorted(records, key=lambda r: r["id"])
        for key, records in document.items()
    }
