#!/usr/bin/env python3
"""Seed a pooled instrument with its buyback fund and proceeds wallets."""
from __future__ import annotations

import argparse
import sys
from decimal import Decimal
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy import select  # noqa: E402  (import after sys.path manipulation)

from sharepool.core.logger import get_logger, init_logging  # noqa: E402
from sharepool.db.session import create_schema, get_sessionmaker, session_scope  # noqa: E402
from sharepool.domain.config import BookingConfig, BuybackConfig  # noqa: E402
from sharepool.domain.status import PriceMethod  # noqa: E402
from sharepool.models import Instrument, PriceHistory, Wallet, WalletOwnerType  # noqa: E402

logger = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--symbol", default="POOL", help="Instrument symbol")
    parser.add_argument("--name", default="Share Pool", help="Instrument display name")
    parser.add_argument("--price", type=Decimal, default=Decimal("20000.00"), help="Opening price per share")
    parser.add_argument("--shares", type=int, default=100_000, help="Total shares issued")
    parser.add_argument("--currency", default="UGX", help="ISO currency code")
    parser.add_argument("--fund", type=Decimal, default=Decimal("0"), help="Opening buyback fund balance")
    return parser.parse_args()


def _ensure_wallet(session, wallet_type: str, currency: str, balance: Decimal) -> Wallet:
    wallet = session.scalar(
        select(Wallet).where(
            Wallet.owner_type == WalletOwnerType.ADMIN,
            Wallet.wallet_type == wallet_type,
            Wallet.currency == currency,
        )
    )
    if wallet is None:
        wallet = Wallet(owner_type=WalletOwnerType.ADMIN, wallet_type=wallet_type, currency=currency, balance=balance)
        session.add(wallet)
        logger.info("Created %s wallet in %s with balance %s", wallet_type, currency, balance)
    return wallet


def main() -> None:
    args = parse_args()
    init_logging(app_name="sharepool-seed", log_dir=None)
    create_schema()

    with session_scope(get_sessionmaker()) as session:
        instrument = session.scalar(select(Instrument).where(Instrument.symbol == args.symbol))
        if instrument is None:
            instrument = Instrument(
                symbol=args.symbol,
                name=args.name,
                current_price=args.price,
                available_shares=args.shares,
                total_shares=args.shares,
                currency=args.currency,
            )
            session.add(instrument)
            session.flush()
            session.add(
                PriceHistory(
                    instrument_id=instrument.id,
                    price=args.price,
                    previous_price=None,
                    calculation_method=PriceMethod.MANUAL,
                    factors={"opening_price": str(args.price)},
                    notes="Opening price",
                    created_by="seed",
                )
            )
            logger.info("Created instrument %s at %s", args.symbol, args.price)
        else:
            logger.info("Instrument %s already exists, keeping it", args.symbol)

        _ensure_wallet(session, BuybackConfig().fund_wallet_type, args.currency, args.fund)
        _ensure_wallet(session, BookingConfig().proceeds_wallet_type, args.currency, Decimal("0"))


if __name__ == "__main__":
    main()
