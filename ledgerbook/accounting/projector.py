"""
Balance projection.

Computes the net effect of split sets on stored account balances. Deltas
are relative: they are applied to whatever balance the account holds at
commit time, never written as absolute values.

reverse(S) is the exact negation of apply(S), which is what makes updates
(reverse old, apply new) and deletes (reverse) safe.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Mapping

from ledgerbook.accounting.rules import balance_effect
from ledgerbook.models.ledger import AccountActivity, Split, SplitTransaction


BalanceDeltas = dict[str, Decimal]


class BalanceProjector:
    """Maps split sets to per-account balance deltas."""

    def apply(self, splits: Iterable[Split]) -> BalanceDeltas:
        deltas: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for split in splits:
            deltas[split.account_id] += balance_effect(split.account_type, split.value)
        return dict(deltas)

    def reverse(self, splits: Iterable[Split]) -> BalanceDeltas:
        return {
            account_id: -delta
            for account_id, delta in self.apply(splits).items()
        }

    def net(
        self,
        old_splits: Iterable[Split],
        new_splits: Iterable[Split],
    ) -> BalanceDeltas:
        """reverse(old) + apply(new), one entry per account, zeros dropped."""
        return self.combine(self.reverse(old_splits), self.apply(new_splits))

    @staticmethod
    def combine(*delta_maps: Mapping[str, Decimal]) -> BalanceDeltas:
        combined: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for deltas in delta_maps:
            for account_id, delta in deltas.items():
                combined[account_id] += delta
        return {
            account_id: delta
            for account_id, delta in combined.items()
            if delta != 0
        }

    def replay(
        self,
        transactions: Iterable[SplitTransaction],
        activities: Iterable[AccountActivity] = (),
    ) -> BalanceDeltas:
        """
        Expected balance of every account from scratch.

        Sum of every split's balance effect plus the manual balance
        adjustments recorded as account activities.
        """
        expected: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for transaction in transactions:
            for account_id, delta in self.apply(transaction.splits).items():
                expected[account_id] += delta
        for activity in activities:
            expected[activity.account_id] += activity.balance_delta
        return dict(expected)


def apply_deltas(
    balances: Mapping[str, Decimal],
    deltas: Mapping[str, Decimal],
) -> dict[str, Decimal]:
    """Return a new balance map with `deltas` added."""
    result = dict(balances)
    for account_id, delta in deltas.items():
        result[account_id] = result.get(account_id, Decimal("0")) + delta
    return result
