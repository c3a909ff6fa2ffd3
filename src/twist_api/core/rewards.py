"""Reward categories and amount validation.

Amounts always travel in the token's smallest unit as a decimal digit string
(or a JSON integer). A category either lists the exact values it may pay out
or allows a closed range quantised to `precision` display decimals.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path

logger = logging.getLogger(__name__)

RewardTable = Mapping[str, "RewardCategory"]


@dataclass(frozen=True)
class RewardCategory:
    """Payout rules for one reward token."""

    name: str
    decimals: int
    precision: int
    allowed: tuple[Decimal, ...] = ()
    minimum: Decimal | None = None
    maximum: Decimal | None = None
    token_address: str | None = None

    def __post_init__(self) -> None:
        if self.precision > self.decimals:
            raise ValueError(f"{self.name}: precision exceeds token decimals")
        if not self.allowed and (self.minimum is None or self.maximum is None):
            raise ValueError(f"{self.name}: needs an allow-list or a closed range")

    @property
    def step(self) -> int:
        """Smallest accepted increment, in smallest units."""
        return 10 ** (self.decimals - self.precision)

    def to_smallest_unit(self, display_value: Decimal | str) -> int:
        scaled = Decimal(display_value) * (Decimal(10) ** self.decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{display_value} has more than {self.decimals} decimals")
        return int(scaled)

    @property
    def allowed_units(self) -> frozenset[int]:
        return frozenset(self.to_smallest_unit(value) for value in self.allowed)

    @property
    def range_units(self) -> tuple[int, int] | None:
        if self.minimum is None or self.maximum is None:
            return None
        return self.to_smallest_unit(self.minimum), self.to_smallest_unit(self.maximum)


def _category(name: str, decimals: int, precision: int, *, allowed: tuple[str, ...] = (),
              minimum: str | None = None, maximum: str | None = None) -> RewardCategory:
    return RewardCategory(
        name=name,
        decimals=decimals,
        precision=precision,
        allowed=tuple(Decimal(value) for value in allowed),
        minimum=Decimal(minimum) if minimum is not None else None,
        maximum=Decimal(maximum) if maximum is not None else None,
    )


DEFAULT_REWARD_TABLE: dict[str, RewardCategory] = {
    category.name: category
    for category in (
        _category("MON", 18, 2, allowed=("0.01", "0.03", "0.05", "0.07", "0.09")),
        _category("YAKI", 18, 3, minimum="0.5", maximum="2.5"),
        _category("CHOG", 18, 3, minimum="0.01", maximum="0.3"),
        _category("WBTC", 8, 6, minimum="0.000001", maximum="0.00001"),
        _category("WSOL", 9, 4, minimum="0.0001", maximum="0.001"),
        _category("WETH", 18, 5, minimum="0.00001", maximum="0.00002"),
        _category("USDC", 6, 4, minimum="0.005", maximum="0.01"),
        _category("ENVELOPE", 18, 4, minimum="0.01", maximum="0.03"),
    )
}


def parse_amount(amount: object) -> int | None:
    """Return `amount` as an integer if it is a plain non-negative digit string or int."""
    if isinstance(amount, bool):
        return None
    if isinstance(amount, int):
        return amount if amount >= 0 else None
    if isinstance(amount, str) and amount.isascii() and amount.isdigit():
        return int(amount)
    return None


def validate_amount(category: str, amount: object, table: RewardTable | None = None) -> bool:
    """Check a payout amount against the reward table.

    Args:
        category: Reward category name, e.g. ``"MON"``.
        amount: Smallest-unit amount as a digit string or integer.
        table: Reward table to consult; defaults to the built-in one.

    Returns:
        True only if the category exists and the amount is positive, on the
        category's precision grid, and inside its allow-list or range.
    """
    rules = (table if table is not None else DEFAULT_REWARD_TABLE).get(category)
    if rules is None:
        return False

    value = parse_amount(amount)
    if value is None or value <= 0:
        return False
    if value % rules.step != 0:
        return False

    if rules.allowed:
        return value in rules.allowed_units

    bounds = rules.range_units
    if bounds is None:
        return False
    low, high = bounds
    return low <= value <= high


def to_smallest_unit(category: str, display_value: Decimal | str,
                     table: RewardTable | None = None) -> int:
    rules = (table if table is not None else DEFAULT_REWARD_TABLE)[category]
    return rules.to_smallest_unit(display_value)


def load_reward_table(
    path: str | Path | None = None,
    token_addresses: Mapping[str, str] | None = None,
) -> dict[str, RewardCategory]:
    """Build the active reward table.

    The JSON file, when given, maps category names to objects with
    ``decimals``, ``precision`` and either ``allowed`` or ``min``/``max``
    (display values as strings). Token contract addresses are attached
    afterwards from `token_addresses`.
    """
    table = dict(DEFAULT_REWARD_TABLE)
    if path is not None:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        table = {}
        for name, entry in raw.items():
            try:
                table[name] = RewardCategory(
                    name=name,
                    decimals=int(entry["decimals"]),
                    precision=int(entry["precision"]),
                    allowed=tuple(Decimal(str(value)) for value in entry.get("allowed", ())),
                    minimum=Decimal(str(entry["min"])) if "min" in entry else None,
                    maximum=Decimal(str(entry["max"])) if "max" in entry else None,
                    token_address=entry.get("tokenAddress"),
                )
            except (KeyError, InvalidOperation, TypeError) as err:
                raise ValueError(f"Invalid reward category {name!r}: {err}") from err
        logger.info("Loaded %d reward categories from %s", len(table), path)

    for name, address in (token_addresses or {}).items():
        if name in table:
            table[name] = replace(table[name], token_address=address)
        else:
            logger.warning("Token address configured for unknown reward category %s", name)
    return table
