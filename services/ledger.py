"""
Transaction ledger.

Stored rows carry a sign convention (sells are negative). Internally every row
is read as a tagged LedgerEvent holding unsigned magnitudes; the sign is
applied again only when amounts are summed or written back to storage.
"""

import datetime as dt
import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from models import Asset, GroupAsset, LeafAsset, SubAsset, Transaction, TransactionType, CategoryType, Currency
from models.transaction import as_utc
from services.money import round_money

logger = logging.getLogger(__name__)


def _sign(kind: TransactionType) -> int:
    return -1 if kind == TransactionType.SELL else 1


@dataclass(frozen=True)
class LedgerEvent:
    """A ledger row read as a tagged operation with unsigned magnitudes."""
    kind: TransactionType
    amount_thb: float
    amount_usd: Optional[float] = None
    quantity: Optional[float] = None

    @property
    def signed_amount_thb(self) -> float:
        return _sign(self.kind) * self.amount_thb

    @property
    def signed_amount_usd(self) -> Optional[float]:
        if self.amount_usd is None:
            return None
        return _sign(self.kind) * self.amount_usd

    @property
    def signed_quantity(self) -> Optional[float]:
        if self.quantity is None:
            return None
        return _sign(self.kind) * self.quantity


def from_record(tx: Transaction) -> LedgerEvent:
    """Read a stored row as a LedgerEvent."""
    quantity = tx.units if tx.units is not None else tx.qty
    return LedgerEvent(
        kind=TransactionType(tx.type),
        amount_thb=abs(tx.amount_thb or 0.0),
        amount_usd=abs(tx.amount_usd) if tx.amount_usd is not None else None,
        quantity=abs(quantity) if quantity is not None else None,
    )


@dataclass(frozen=True)
class BuyTotals:
    """Summed cost of buy events."""
    amount_thb: float
    amount_usd: Optional[float]


def transactions_for(
    transactions: Iterable[Transaction],
    asset_id: str,
    sub_asset_id: Optional[str] = None,
    newest_first: bool = False
) -> List[Transaction]:
    """
    Select the rows that target one asset or sub-asset.

    A None sub_asset_id matches only rows aimed at the parent asset itself.

    Args:
        transactions: Full transaction set
        asset_id: Target asset
        sub_asset_id: Target sub-asset, or None for the parent
        newest_first: Sort by (date, created_at) descending for history display;
            otherwise insertion order is kept

    Returns:
        Matching transactions
    """
    matched = [
        tx for tx in transactions
        if tx.asset_id == asset_id and (tx.sub_asset_id or None) == (sub_asset_id or None)
    ]
    if newest_first:
        matched.sort(key=lambda tx: (tx.date, as_utc(tx.created_at)), reverse=True)
    return matched


def buys_only(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Keep buy rows only."""
    return [tx for tx in transactions if tx.type == TransactionType.BUY.value]


def sum_buys(transactions: Iterable[Transaction]) -> BuyTotals:
    """
    Sum amount_thb and amount_usd over buy rows.
    Dividends, fees and sells never enter the cost basis.
    amount_usd is None when no buy carries a USD amount.
    """
    total_thb = 0.0
    total_usd: Optional[float] = None
    for event in (from_record(tx) for tx in buys_only(transactions)):
        total_thb += event.signed_amount_thb
        if event.amount_usd is not None:
            total_usd = (total_usd or 0.0) + event.signed_amount_usd
    return BuyTotals(amount_thb=total_thb, amount_usd=total_usd)


def sum_quantity(transactions: Iterable[Transaction]) -> float:
    """Sum units (or qty) over buy rows."""
    total = 0.0
    for event in (from_record(tx) for tx in buys_only(transactions)):
        if event.quantity is not None:
            total += event.signed_quantity
    return total


# ==================== Building new rows ====================

def resolve_target(asset: Asset, sub_asset_id: Optional[str]) -> Union[Asset, SubAsset]:
    """The asset or sub-asset a transaction is recorded against."""
    if sub_asset_id is None:
        if isinstance(asset, GroupAsset):
            raise ValueError(f"Asset {asset.id} is a group; transactions go to one of its sub-assets")
        return asset
    if not isinstance(asset, GroupAsset):
        raise ValueError(f"Asset {asset.id} has no sub-assets")
    for sub in asset.sub_assets:
        if sub.id == sub_asset_id:
            return sub
    raise ValueError(f"Sub-asset {sub_asset_id} not found in asset {asset.id}")


def quantity_field(target: Union[Asset, SubAsset]) -> str:
    """
    Pick the column a quantity is stored in.
    Fund-bound assets hold units; stocks and sub-assets hold qty.
    """
    if isinstance(target, SubAsset):
        return "qty"
    if isinstance(target, LeafAsset) and target.bound_fund_code:
        return "units"
    if target.type == CategoryType.STOCK:
        return "qty"
    return "units"


def _check_magnitude(name: str, value: Optional[float]) -> None:
    if value is None:
        return
    if not isinstance(value, (int, float)) or math.isnan(value) or math.isinf(value):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value!r}")


def build_transaction(
    user_id: str,
    asset: Asset,
    kind: Union[TransactionType, str],
    amount: float,
    quantity: Optional[float] = None,
    sub_asset_id: Optional[str] = None,
    rate: Optional[float] = None,
    tx_date: Optional[dt.date] = None,
    price_per_unit: Optional[float] = None,
    notes: Optional[str] = None
) -> Transaction:
    """
    Build a correctly signed ledger row for an asset or one of its sub-assets.

    Amounts and quantities are given as positive magnitudes in the target's
    own currency. USD amounts are converted to THB at `rate` and that THB
    figure is frozen on the row.

    Args:
        user_id: Ledger owner
        asset: Target asset (parent when sub_asset_id is given)
        kind: buy, sell, dividend or fee
        amount: Amount in the target's currency
        quantity: Units or shares, if any
        sub_asset_id: Sub-asset inside a stock group, or None for the parent
        rate: USD->THB rate, required for USD targets
        tx_date: Trade date (defaults to today)
        price_per_unit: NAV or share price at the time
        notes: Free-text note

    Returns:
        Unsaved Transaction

    Raises:
        ValueError: on an unknown kind, negative or non-numeric input, a missing
            rate for a USD target, a group without sub_asset_id, or an unknown
            sub-asset
    """
    kind = TransactionType(kind)
    _check_magnitude("amount", amount)
    _check_magnitude("quantity", quantity)
    _check_magnitude("price_per_unit", price_per_unit)

    target = resolve_target(asset, sub_asset_id)
    sign = _sign(kind)

    if target.currency == Currency.USD:
        if not rate or rate <= 0:
            raise ValueError("A positive USD->THB rate is required for USD amounts")
        amount_usd: Optional[float] = sign * round_money(amount)
        amount_thb = sign * round_money(amount * rate)
    else:
        amount_usd = None
        amount_thb = sign * round_money(amount)

    units = qty = None
    if quantity is not None:
        if quantity_field(target) == "units":
            units = sign * quantity
        else:
            qty = sign * quantity

    return Transaction(
        user_id=user_id,
        asset_id=asset.id,
        sub_asset_id=sub_asset_id,
        type=kind.value,
        amount_thb=amount_thb,
        amount_usd=amount_usd,
        units=units,
        qty=qty,
        price_per_unit=price_per_unit,
        currency=target.currency.value,
        date=tx_date or dt.date.today(),
        notes=notes,
    )


class Ledger:
    """
    In-memory view of a user's ledger backed by a transaction repository.
    append and remove are the only ways it changes.
    """

    def __init__(self, user_id: str, repository, transactions: Optional[Iterable[Transaction]] = None):
        self.user_id = user_id
        self._repository = repository
        self._transactions: List[Transaction] = list(transactions or [])

    @classmethod
    def load(cls, user_id: str, repository) -> "Ledger":
        """Load every transaction of a user from the repository."""
        return cls(user_id, repository, repository.get_by_user(user_id))

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return tuple(self._transactions)

    def append(self, transaction: Transaction) -> Optional[Transaction]:
        """
        Store a new row; the repository assigns its id.

        Returns:
            The stored Transaction, or None if the repository rejected it
        """
        stored = self._repository.add(transaction)
        if stored is None:
            logger.warning(f"Ledger append failed for asset {transaction.asset_id}")
            return None
        self._transactions.append(stored)
        return stored

    def remove(self, transaction_id: str) -> bool:
        """Hard-delete a row by id."""
        if not self._repository.delete(transaction_id):
            return False
        self._transactions = [tx for tx in self._transactions if tx.id != transaction_id]
        return True

    def remove_asset(self, asset_id: str) -> int:
        """Delete every row of an asset, returning how many were removed."""
        count = self._repository.delete_by_asset(self.user_id, asset_id)
        self._transactions = [tx for tx in self._transactions if tx.asset_id != asset_id]
        return count

    def history(self, asset_id: str, sub_asset_id: Optional[str] = None) -> List[Transaction]:
        """Rows of one asset or sub-asset, newest first."""
        return transactions_for(self._transactions, asset_id, sub_asset_id, newest_first=True)
