"""
Per-asset balance ledger.

Positive balances are owned assets, negative balances are borrowed.
Only the portfolio mutates a wallet.
"""

from __future__ import annotations

from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple

from .models import ZERO


class Wallet:
    """Signed balances keyed by asset symbol (``BTC``, ``USDT``...)."""

    def __init__(self, balances: Optional[Mapping[str, Decimal]] = None) -> None:
        self._balances: Dict[str, Decimal] = dict(balances or {})

    def balance(self, asset: str) -> Decimal:
        return self._balances.get(asset, ZERO)

    def credit(self, asset: str, amount: Decimal) -> None:
        self._balances[asset] = self.balance(asset) + amount

    def debit(self, asset: str, amount: Decimal) -> None:
        self._balances[asset] = self.balance(asset) - amount

    def items(self) -> Iterator[Tuple[str, Decimal]]:
        return iter(list(self._balances.items()))

    def snapshot(self) -> Mapping[str, Decimal]:
        """Read-only view of the current balances."""
        return MappingProxyType(dict(self._balances))

    def copy(self) -> "Wallet":
        return Wallet(self._balances)

    def __repr__(self) -> str:
        return f"Wallet({self._balances!r})"
