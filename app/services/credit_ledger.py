"""
Credit ledger: reservations (holds), settlement and refunds.

A reservation moves credits out of the available balance. It ends exactly
once, either settled (the actual spend is debited and any remainder returned)
or refunded in full. Repeating settle or refund on an ended reservation is a
no-op that returns the current balance.
"""

import asyncio
import logging
import uuid
import weakref
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.errors import BadInputError, CreditOverageError, InsufficientCreditsError
from app.core.logging import get_logger, log_with_context

logger = get_logger(__name__)


class ReservationStatus(str, Enum):
    HELD = "held"
    SETTLED = "settled"
    REFUNDED = "refunded"


class EntryType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class Reservation(BaseModel):
    id: str
    user_id: str
    amount: int
    status: ReservationStatus = ReservationStatus.HELD
    settled_amount: int = 0
    refunded_amount: int = 0
    description: str = ""
    idempotency_key: str | None = None
    created_at: str


class LedgerEntry(BaseModel):
    id: str
    user_id: str
    entry_type: EntryType
    amount: int
    transaction_type: str = Field(..., description="hold, spend, hold_release, refund, adjustment")
    reservation_id: str | None = None
    description: str = ""
    created_at: str


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CreditLedger:
    """In-process ledger. Operations on one reservation are serialized."""

    def __init__(self, default_balance: int | None = None):
        self._default_balance = (
            default_balance if default_balance is not None else get_settings().CREDITS_DEFAULT_BALANCE
        )
        self._balances: dict[str, int] = {}
        self._reservations: dict[str, Reservation] = {}
        self._idempotency: dict[str, str] = {}
        self._entries: list[LedgerEntry] = []
        # Locks live only while a coroutine holds or awaits them
        self._user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._reservation_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _user_lock(self, user_id: str) -> asyncio.Lock:
        return self._user_locks.setdefault(user_id, asyncio.Lock())

    def _reservation_lock(self, reservation_id: str) -> asyncio.Lock:
        return self._reservation_locks.setdefault(reservation_id, asyncio.Lock())

    def _record(
        self,
        user_id: str,
        entry_type: EntryType,
        amount: int,
        transaction_type: str,
        reservation_id: str | None = None,
        description: str = "",
    ) -> None:
        self._entries.append(
            LedgerEntry(
                id=str(uuid.uuid4()),
                user_id=user_id,
                entry_type=entry_type,
                amount=amount,
                transaction_type=transaction_type,
                reservation_id=reservation_id,
                description=description,
                created_at=_utc_now_iso(),
            )
        )

    def _get(self, reservation_id: str) -> Reservation:
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            raise BadInputError(f"Unknown reservation: {reservation_id}")
        return reservation

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def open_account(self, user_id: str, balance: int) -> None:
        """Set a user's available balance."""
        self._balances[user_id] = balance

    def balance(self, user_id: str) -> int:
        return self._balances.setdefault(user_id, self._default_balance)

    def held(self, user_id: str) -> int:
        return sum(
            r.amount
            for r in self._reservations.values()
            if r.user_id == user_id and r.status == ReservationStatus.HELD
        )

    def get_reservation(self, reservation_id: str) -> Reservation:
        return self._get(reservation_id).model_copy()

    def transactions(self, user_id: str) -> list[LedgerEntry]:
        """Ledger entries for a user in the order they were written."""
        return [e for e in self._entries if e.user_id == user_id]

    async def reserve(
        self,
        user_id: str,
        amount: int,
        idempotency_key: str | None = None,
        description: str = "",
    ) -> str:
        """
        Hold credits for later settlement.

        Raises:
            BadInputError: Negative amount
            InsufficientCreditsError: Available balance does not cover the amount
        """
        if amount < 0:
            raise BadInputError(f"Reservation amount must be non-negative, got {amount}")

        async with self._user_lock(user_id):
            if idempotency_key and idempotency_key in self._idempotency:
                return self._idempotency[idempotency_key]

            available = self.balance(user_id)
            if amount > available:
                raise InsufficientCreditsError(
                    f"Insufficient credits: {amount} required, {available} available"
                )

            reservation = Reservation(
                id=f"hold_{uuid.uuid4().hex[:12]}",
                user_id=user_id,
                amount=amount,
                description=description,
                idempotency_key=idempotency_key,
                created_at=_utc_now_iso(),
            )
            self._reservations[reservation.id] = reservation
            if idempotency_key:
                self._idempotency[idempotency_key] = reservation.id
            self._balances[user_id] = available - amount
            self._record(user_id, EntryType.DEBIT, amount, "hold", reservation.id, description)

        log_with_context(
            logger, logging.INFO, f"Reserved {amount} credits",
            reservation_id=reservation.id, user_id=user_id,
        )
        return reservation.id

    async def settle(self, reservation_id: str, actual: int) -> int:
        """
        Debit the actual spend and return any remainder.

        Raises:
            CreditOverageError: actual exceeds the reserved amount (reservation stays held)
        """
        async with self._reservation_lock(reservation_id):
            reservation = self._get(reservation_id)
            if reservation.status != ReservationStatus.HELD:
                return self.balance(reservation.user_id)
            if actual < 0:
                raise BadInputError(f"Settlement amount must be non-negative, got {actual}")
            if actual > reservation.amount:
                raise CreditOverageError(
                    f"Settlement of {actual} exceeds reservation of {reservation.amount}"
                )

            remainder = reservation.amount - actual
            reservation.status = ReservationStatus.SETTLED
            reservation.settled_amount = actual
            reservation.refunded_amount = remainder
            user_id = reservation.user_id
            self._balances[user_id] = self.balance(user_id) + remainder

            self._record(user_id, EntryType.CREDIT, reservation.amount, "hold_release", reservation_id)
            self._record(user_id, EntryType.DEBIT, actual, "spend", reservation_id, reservation.description)

        logger.info(
            f"Settled {actual} of {reservation.amount} credits",
            extra={"reservation_id": reservation_id},
        )
        return self.balance(user_id)

    async def refund(self, reservation_id: str) -> int:
        """Return the full reservation to the available balance."""
        async with self._reservation_lock(reservation_id):
            reservation = self._get(reservation_id)
            if reservation.status != ReservationStatus.HELD:
                return self.balance(reservation.user_id)

            reservation.status = ReservationStatus.REFUNDED
            reservation.refunded_amount = reservation.amount
            user_id = reservation.user_id
            self._balances[user_id] = self.balance(user_id) + reservation.amount
            self._record(user_id, EntryType.CREDIT, reservation.amount, "refund", reservation_id)

        logger.info(f"Refunded {reservation.amount} credits", extra={"reservation_id": reservation_id})
        return self.balance(user_id)


@lru_cache(maxsize=1)
def get_credit_ledger() -> CreditLedger:
    """Process-wide ledger (cached singleton)."""
    return CreditLedger()
