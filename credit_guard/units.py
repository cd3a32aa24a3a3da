"""Fixed-point conversions between human amounts, base units and micro-USD.

Values that gate financial decisions are plain ``int``:

* token amounts in the asset's base units (``10**decimals`` per whole token)
* prices in micro-USD per whole token
* USD values in micro-USD (6 decimals)
"""
from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Union

USD_DECIMALS = 6
USD_SCALE = 10**USD_DECIMALS
BPS_DENOMINATOR = 10_000
SECONDS_PER_DAY = 86_400

Number = Union[int, str, Decimal]


def to_base_units(amount: Number, decimals: int) -> int:
    """Convert a human amount (``"1.5"``) to integer base units, truncating.

    Floats are rejected: ``Decimal(0.1)`` carries binary rounding noise that
    would leak into ledger amounts.
    """
    if isinstance(amount, float):
        raise TypeError("Use str, int or Decimal for amounts, not float")
    scaled = Decimal(amount) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(units: int, decimals: int) -> Decimal:
    """Convert integer base units back to a human ``Decimal`` amount."""
    return Decimal(units) / (Decimal(10) ** decimals)


def usd(amount: Number) -> int:
    """Human USD amount → micro-USD."""
    return to_base_units(amount, USD_DECIMALS)


def value_of(units: int, decimals: int, price: int) -> int:
    """Micro-USD value of ``units`` base units at ``price`` micro-USD/token."""
    return units * price // 10**decimals


def units_for_value(value: int, decimals: int, price: int) -> int:
    """Base units worth ``value`` micro-USD at ``price`` (floor)."""
    if price <= 0:
        return 0
    return value * 10**decimals // price


def day_index(timestamp: float) -> int:
    """Calendar-day index (UTC) of a unix timestamp."""
    return int(timestamp) // SECONDS_PER_DAY


def format_usd(value: int) -> str:
    """Micro-USD → ``$1,234.56`` (display only)."""
    return f"${float(from_base_units(value, USD_DECIMALS)):,.2f}"


def format_amount(units: int, decimals: int, symbol: str) -> str:
    """Base units → ``1.2345 SOL`` (display only)."""
    return f"{float(from_base_units(units, decimals)):,.4f} {symbol}"
