"""Balance computation package."""

from splitledger.balances.engine import BalanceEngine

__all__ = ["BalanceEngine"]
