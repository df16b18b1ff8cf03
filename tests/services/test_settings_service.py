from decimal import Decimal
from unittest.mock import create_autospec

import pytest
from sqlalchemy.orm import Session

from sharepool.core.errors import ConfigurationError, ValidationError
from sharepool.domain.config import ActivityPeriod, BuybackConfig, PricingConfig
from sharepool.models import PricingSettings
from sharepool.repositories.settings_repository import SettingsRepository
from sharepool.services.settings_service import SettingsService


def test_defaults_when_no_rows_exist(session) -> None:
    service = SettingsService(session)

    assert service.pricing_config() == PricingConfig()
    assert service.buyback_config() == BuybackConfig()
    assert service.booking_config().credit_period_days == 30


def test_updates_append_rows_and_latest_wins(session) -> None:
    service = SettingsService(session)

    service.update_pricing(actor="admin", is_enabled=True, market_activity_period="weekly")
    updated = service.update_pricing(actor="admin", sensitivity_scale="7")

    assert updated.is_enabled is True
    assert updated.sensitivity_scale == 7
    assert updated.market_activity_period is ActivityPeriod.WEEKLY
    assert session.query(PricingSettings).count() == 2
    assert service.pricing_config() == updated


def test_inconsistent_update_is_rejected(session) -> None:
    service = SettingsService(session)

    with pytest.raises(ConfigurationError):
        service.update_buyback(max_daily_amount=Decimal("100"), max_weekly_amount=Decimal("10"))
    with pytest.raises(ValidationError):
        service.update_booking(unknown_field=1)
    with pytest.raises(ValidationError):
        service.update_pricing(max_increase_percent="lots")


def test_reads_go_through_the_repository() -> None:
    session = create_autospec(Session, instance=True)
    repository = create_autospec(SettingsRepository, instance=True)
    repository.latest_buyback.return_value = None

    config = SettingsService(session, repository=repository).buyback_config()

    assert config.batch_size == 10
    repository.latest_buyback.assert_called_once_with()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("false", False), ("False", False), ("0", False), ("off", False), (0, False), ("true", True), ("yes", True), (1, True)],
)
def test_flags_parse_text_and_numbers(session, raw, expected) -> None:
    service = SettingsService(session)

    assert service.update_buyback(is_enabled=raw).is_enabled is expected
    assert service.buyback_config().is_enabled is expected


@pytest.mark.parametrize("raw", ["maybe", "", 2])
def test_unrecognised_flag_is_rejected(session, raw) -> None:
    with pytest.raises(ValidationError):
        SettingsService(session).update_pricing(is_enabled=raw)


def test_unset_clears_optional_buyback_limits(session) -> None:
    service = SettingsService(session)
    service.update_buyback(max_daily_amount="1500000", auto_approval_limit="500000")

    cleared = service.update_buyback(unset=["max_daily_amount"], batch_size=5)

    assert cleared.max_daily_amount is None
    assert cleared.auto_approval_limit == Decimal("500000")
    assert cleared.batch_size == 5
    assert service.buyback_config().max_daily_amount is None


def test_unset_rejects_required_unknown_and_contradictory_fields(session) -> None:
    service = SettingsService(session)

    with pytest.raises(ValidationError):
        service.update_buyback(unset=["batch_size"])
    with pytest.raises(ValidationError):
        service.update_buyback(unset=["no_such_limit"])
    with pytest.raises(ValidationError):
        service.update_buyback(unset=["max_daily_amount"], max_daily_amount="100")
