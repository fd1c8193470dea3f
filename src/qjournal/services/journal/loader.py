"""Journal file loader.

Reads a YAML journal (portfolio settings, capital changes and trades) into
validated models for the command line front end.

Example file:
    portfolio_size: 100000
    monthly_portfolio_sizes:
      Mar-2024: 120000
    capital_changes:
      - {date: 2024-02-01, amount: 10000, description: top-up}
    trades:
      - trade_id: t1
        trade_no: 1
        name: acme
        date: 2024-01-02
        entries: [{price: 100, quantity: 10}]
        exits: [{price: 110, quantity: 10, date: 2024-01-12}]
        stop_loss: 95
"""

from decimal import Decimal
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from qjournal.services.journal.models import CapitalChange, Trade
from qjournal.services.journal.sizing import PortfolioSizeResolver, parse_month_key


class JournalFile(BaseModel):
    """Contents of a journal file."""

    portfolio_size: Decimal = Decimal("100000")
    monthly_portfolio_sizes: dict[str, Decimal] = Field(default_factory=dict)
    capital_changes: list[CapitalChange] = Field(default_factory=list)
    trades: list[Trade] = Field(default_factory=list)

    @field_validator("portfolio_size")
    @classmethod
    def validate_portfolio_size(cls, v: Decimal) -> Decimal:
        """Validate portfolio size is positive."""
        if not v.is_finite() or v <= 0:
            raise ValueError(f"portfolio_size must be positive, got {v}")
        return v

    @field_validator("monthly_portfolio_sizes")
    @classmethod
    def validate_month_keys(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        """Validate keys look like "Jan-2024"."""
        for key in v:
            if parse_month_key(key) is None:
                raise ValueError(f"Invalid month key '{key}', expected e.g. 'Jan-2024'")
        return v

    def build_resolver(self) -> PortfolioSizeResolver:
        monthly = {parse_month_key(key): size for key, size in self.monthly_portfolio_sizes.items()}
        return PortfolioSizeResolver(
            self.portfolio_size,
            monthly_sizes=monthly,  # type: ignore[arg-type]
            capital_changes=self.capital_changes,
        )


def load_journal(path: str | Path) -> JournalFile:
    """
    Load and validate a journal file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid YAML, not a mapping, or fails validation
    """
    journal_path = Path(path)
    if not journal_path.exists():
        raise FileNotFoundError(f"Journal file not found: {journal_path}")

    try:
        with open(journal_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {journal_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Journal file must contain a mapping, got {type(data).__name__}")

    return JournalFile.model_validate(data)
