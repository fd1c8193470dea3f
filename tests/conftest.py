"""Root conftest for all tests - path setup and shared journal fixtures."""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# Add src to sys.path so tests run without an editable install
src_root = Path(__file__).parent.parent / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from qjournal.services.journal.models import Trade  # noqa: E402
from qjournal.system.log_system import LoggerFactory  # noqa: E402


def _build_trade(
    trade_id: str,
    entry_price: str = "100",
    quantity: str = "10",
    trade_date: date | None = date(2024, 1, 10),
    exits: list[tuple[str, str, date | None]] | None = None,
    **fields,
) -> Trade:
    return Trade(
        trade_id=trade_id,
        date=trade_date,
        entries=[{"price": Decimal(entry_price), "quantity": Decimal(quantity), "date": trade_date}],
        exits=[{"price": Decimal(p), "quantity": Decimal(q), "date": d} for p, q, d in (exits or [])],
        **fields,
    )


@pytest.fixture
def make_trade():
    """Factory for raw journal trades with one entry lot and optional (price, qty, date) exits."""
    return _build_trade


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logger configuration between tests."""
    yield
    LoggerFactory.reset()
