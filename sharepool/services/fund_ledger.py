"""SQL-backed cash ledger debited and credited by bookings and buybacks."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from sharepool.core.errors import InsufficientFundsError, NotFoundError, ValidationError
from sharepool.core.logger import get_logger
from sharepool.db.locks import flush_or_conflict
from sharepool.domain.pricing import quantize_price
from sharepool.models import FundDirection, FundMovement, Wallet, WalletOwnerType
from sharepool.repositories.wallet_repository import WalletRepository

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class FundOperation:
    """Outcome of one debit or credit; failures carry ``error`` and change nothing."""

    success: bool
    wallet_id: int
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    error: str | None = None

    def raise_for_failure(self) -> "FundOperation":
        if not self.success:
            raise InsufficientFundsError(
                self.amount, self.balance_before, wallet_id=self.wallet_id
            )
        return self


class FundLedger:
    """Debit, credit and balance lookups over :class:`Wallet` rows."""

    INSUFFICIENT_FUNDS = "insufficient_funds"

    def __init__(self, session: Session, repository: WalletRepository | None = None) -> None:
        self._session = session
        self._repository = repository or WalletRepository(session)

    def _prepare(self, wallet_id: int, amount: Decimal, currency: str) -> tuple[Wallet, Decimal]:
        value = quantize_price(Decimal(amount))
        if value <= 0:
            raise ValidationError("Amount must be greater than zero", amount=str(amount))
        wallet = self._repository.lock(wallet_id)
        if wallet.currency != currency:
            raise ValidationError(
                "Currency does not match the wallet",
                wallet_id=wallet_id,
                wallet_currency=wallet.currency,
                currency=currency,
            )
        return wallet, value

    def _record(
        self,
        wallet: Wallet,
        direction: FundDirection,
        amount: Decimal,
        before: Decimal,
        *,
        reference: str | None,
        description: str | None,
    ) -> FundOperation:
        self._session.add(
            FundMovement(
                wallet_id=wallet.id,
                direction=direction,
                amount=amount,
                balance_before=before,
                balance_after=wallet.balance,
                reference=reference,
                description=description,
            )
        )
        flush_or_conflict(self._session, f"Wallet {wallet.id}")
        LOGGER.info(
            "%s %s %s on wallet %s (balance %s -> %s)",
            direction.value.capitalize(),
            amount,
            wallet.currency,
            wallet.id,
            before,
            wallet.balance,
        )
        return FundOperation(
            success=True,
            wallet_id=wallet.id,
            amount=amount,
            balance_before=before,
            balance_after=wallet.balance,
        )

    def debit(
        self,
        wallet_id: int,
        amount: Decimal,
        currency: str,
        *,
        reference: str | None = None,
        description: str | None = None,
    ) -> FundOperation:
        """Take ``amount`` out of the wallet, or report failure without writing."""

        wallet, value = self._prepare(wallet_id, amount, currency)
        before = wallet.balance
        if before < value:
            LOGGER.warning(
                "Debit of %s %s refused on wallet %s: balance %s", value, currency, wallet_id, before
            )
            return FundOperation(
                success=False,
                wallet_id=wallet_id,
                amount=value,
                balance_before=before,
                balance_after=before,
                error=self.INSUFFICIENT_FUNDS,
            )
        wallet.balance = before - value
        return self._record(
            wallet, FundDirection.DEBIT, value, before, reference=reference, description=description
        )

    def credit(
        self,
        wallet_id: int,
        amount: Decimal,
        currency: str,
        *,
        reference: str | None = None,
        description: str | None = None,
    ) -> FundOperation:
        wallet, value = self._prepare(wallet_id, amount, currency)
        before = wallet.balance
        wallet.balance = before + value
        return self._record(
            wallet, FundDirection.CREDIT, value, before, reference=reference, description=description
        )

    def get_balance(self, wallet_type: str, currency: str) -> Decimal:
        """Balance of the platform wallet of ``wallet_type``; zero when none exists."""

        wallet = self.find_wallet(wallet_type, currency)
        return wallet.balance if wallet is not None else Decimal("0.00")

    def find_wallet(
        self,
        wallet_type: str,
        currency: str,
        *,
        user_id: int | None = None,
    ) -> Wallet | None:
        owner_type = WalletOwnerType.ADMIN if user_id is None else WalletOwnerType.USER
        return self._repository.find(wallet_type, currency, owner_type=owner_type, user_id=user_id)

    def user_wallet(self, wallet_id: int, user_id: int, currency: str) -> Wallet:
        """The personal wallet ``wallet_id``, provided it belongs to ``user_id`` and holds ``currency``."""

        wallet = self._repository.get(wallet_id)
        if wallet is None:
            raise NotFoundError("Wallet", wallet_id)
        if wallet.owner_type is not WalletOwnerType.USER or wallet.user_id != user_id:
            raise ValidationError("Wallet does not belong to the user", wallet_id=wallet_id, user_id=user_id)
        if wallet.currency != currency:
            raise ValidationError(
                "Currency does not match the wallet",
                wallet_id=wallet_id,
                wallet_currency=wallet.currency,
                currency=currency,
            )
        return wallet


__all__ = ["FundLedger", "FundOperation"]
