"""Data access for wallets and fund movements."""
from __future__ import annotations

from sqlalchemy import select

from sharepool.models import FundMovement, Wallet, WalletOwnerType

from .base import BaseRepository


class WalletRepository(BaseRepository):
    """Repository for cash wallets."""

    def get(self, wallet_id: int) -> Wallet | None:
        return self._session.get(Wallet, wallet_id)

    def lock(self, wallet_id: int) -> Wallet:
        return self._lock(Wallet, wallet_id, "Wallet")

    def find(
        self,
        wallet_type: str,
        currency: str,
        *,
        owner_type: WalletOwnerType | None = None,
        user_id: int | None = None,
    ) -> Wallet | None:
        """First wallet of ``wallet_type`` in ``currency``, optionally scoped to an owner."""

        statement = select(Wallet).where(Wallet.wallet_type == wallet_type, Wallet.currency == currency)
        if owner_type is not None:
            statement = statement.where(Wallet.owner_type == owner_type)
        if user_id is not None:
            statement = statement.where(Wallet.user_id == user_id)
        return self._session.execute(statement.order_by(Wallet.id).limit(1)).scalar_one_or_none()

    def movements(self, wallet_id: int, *, limit: int = 100) -> list[FundMovement]:
        statement = (
            select(FundMovement)
            .where(FundMovement.wallet_id == wallet_id)
            .order_by(FundMovement.id.desc())
            .limit(limit)
        )
        return list(self._session.execute(statement).scalars())


__all__ = ["WalletRepository"]
