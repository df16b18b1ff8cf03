"""Shared fixtures: an in-memory ledger store and helpers to seed it."""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sharepool.domain.status import PriceMethod, PriceMode, TransactionType
from sharepool.models import (
    Base,
    Instrument,
    PriceHistory,
    ShareHolding,
    ShareTransaction,
    Wallet,
    WalletOwnerType,
)

NOW = datetime(2025, 1, 15, 12, 0, 0)


class Seeder:
    """Insert the rows a scenario starts from."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def instrument(
        self,
        *,
        price: str = "20000.00",
        total_shares: int = 100_000,
        available_shares: int | None = None,
        mode: PriceMode = PriceMode.MANUAL,
        symbol: str = "POOL",
        currency: str = "UGX",
    ) -> Instrument:
        instrument = Instrument(
            symbol=symbol,
            name="Share Pool",
            current_price=Decimal(price),
            total_shares=total_shares,
            available_shares=total_shares if available_shares is None else available_shares,
            currency=currency,
            price_calculation_mode=mode,
        )
        self.session.add(instrument)
        self.session.flush()
        method = PriceMethod.MANUAL if mode is PriceMode.MANUAL else PriceMethod.MODE_SWITCH_TO_AUTO
        self.session.add(
            PriceHistory(
                instrument_id=instrument.id,
                price=Decimal(price),
                previous_price=Decimal(price),
                percent_change=Decimal("0"),
                calculation_method=method,
                factors={},
                created_by="seed",
                created_at=NOW - timedelta(days=30),
            )
        )
        self.session.flush()
        return instrument

    def wallet(
        self,
        wallet_type: str,
        balance: str = "0",
        *,
        user_id: int | None = None,
        currency: str = "UGX",
    ) -> Wallet:
        wallet = Wallet(
            owner_type=WalletOwnerType.ADMIN if user_id is None else WalletOwnerType.USER,
            user_id=user_id,
            wallet_type=wallet_type,
            currency=currency,
            balance=Decimal(balance),
        )
        self.session.add(wallet)
        self.session.flush()
        return wallet

    def holding(self, user_id: int, instrument: Instrument, quantity: int) -> ShareHolding:
        holding = ShareHolding(user_id=user_id, instrument_id=instrument.id, quantity=quantity, reserved_quantity=0)
        self.session.add(holding)
        self.session.flush()
        return holding

    def trade(
        self,
        instrument: Instrument,
        transaction_type: TransactionType,
        quantity: int,
        created_at: datetime,
        *,
        user_id: int = 99,
    ) -> ShareTransaction:
        transaction = ShareTransaction(
            instrument_id=instrument.id,
            user_id=user_id,
            transaction_type=transaction_type,
            quantity=quantity,
            price_per_share=instrument.current_price,
            total_amount=instrument.current_price * quantity,
            created_at=created_at,
        )
        self.session.add(transaction)
        self.session.flush()
        return transaction


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def seed(session: Session) -> Seeder:
    return Seeder(session)


@pytest.fixture()
def seeder_for():
    return Seeder


@pytest.fixture()
def file_session_factory(tmp_path) -> sessionmaker:
    """Sessions over a file database shared by threads, one writer at a time.

    ``BEGIN IMMEDIATE`` takes the write lock when a transaction starts, so
    concurrent writers queue up instead of failing on lock upgrade.
    """

    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()
