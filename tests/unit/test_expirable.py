"""
Unit Tests for Expirable Records.

Tests instance expire()/unexpire() transitions, hook ordering and veto,
column naming and listener registration.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from conftest import Coupon, ExpiredHandler, Subscription, names
from src.expiration import DEFAULT_EXPIRED_AT_COLUMN, ExpirationEvent
from src.persistence import HookKind, ModelEvent, RecordNotAttachedError


def reload(session: Session, record: Subscription) -> Subscription:
    session.expire_all()
    return Subscription.query(session).with_expired().find(record.id)


class TestExpire:
    """Instance-level expire()."""

    def test_expire_active_record(
        self,
        session: Session,
        subscriptions: dict,
        now: datetime,
    ) -> None:
        record = subscriptions["A"]

        assert record.expire() is True

        stored = reload(session, record)
        assert stored.expired_at is not None
        assert now <= stored.expired_at <= now + timedelta(minutes=1)
        assert stored.is_expired()
        assert names(Subscription.query(session).all()) == {"C"}

    def test_expiring_veto(self, session: Session, subscriptions: dict) -> None:
        """A listener returning False cancels; nothing is written."""
        saving = MagicMock(return_value=None)
        expired = MagicMock(return_value=None)
        Subscription.register_model_event(ModelEvent.SAVING, saving)
        Subscription.on_expiring(lambda record: False)
        Subscription.on_expired(expired)

        record = subscriptions["A"]
        result = record.expire()

        assert not result
        assert record.expired_at is None
        saving.assert_not_called()
        expired.assert_not_called()
        assert reload(session, record).expired_at is None

    def test_hook_order(self, session: Session, subscriptions: dict) -> None:
        calls: list[str] = []
        Subscription.on_expiring(lambda record: calls.append("expiring"))
        Subscription.register_model_event(ModelEvent.SAVED, lambda record: calls.append("saved"))
        Subscription.on_expired(lambda record: calls.append(f"expired:{record.is_expired()}"))

        subscriptions["C"].expire()

        assert calls == ["expiring", "saved", "expired:True"]

    def test_listeners_run_in_registration_order(
        self,
        session: Session,
        subscriptions: dict,
    ) -> None:
        calls: list[int] = []
        for index in range(3):
            Subscription.on_expiring(lambda record, index=index: calls.append(index))

        subscriptions["A"].expire()

        assert calls == [0, 1, 2]

    def test_first_non_none_guard_response_halts(
        self,
        session: Session,
        subscriptions: dict,
    ) -> None:
        """A truthy response stops later guards without cancelling."""
        later = MagicMock(return_value=False)
        Subscription.on_expiring(lambda record: True)
        Subscription.on_expiring(later)

        assert subscriptions["A"].expire() is True
        later.assert_not_called()

    def test_expired_hook_fires_when_save_is_vetoed(
        self,
        session: Session,
        subscriptions: dict,
    ) -> None:
        expired = MagicMock(return_value=None)
        Subscription.register_model_event(ModelEvent.SAVING, lambda record: False)
        Subscription.on_expired(expired)

        record = subscriptions["A"]

        assert record.expire() is False
        expired.assert_called_once_with(record)

    def test_expired_hook_response_is_ignored(
        self,
        session: Session,
        subscriptions: dict,
    ) -> None:
        Subscription.on_expired(lambda record: False)

        assert subscriptions["A"].expire() is True
        assert reload(session, subscriptions["A"]).is_expired()

    def test_expire_custom_column(self, session: Session, coupons: dict) -> None:
        coupon = coupons["live"]

        assert coupon.expire() is True
        assert coupon.retired_at is not None
        assert coupon.is_expired()

    def test_expire_detached_record(self) -> None:
        with pytest.raises(RecordNotAttachedError):
            Subscription(name="loose").expire()


class TestUnexpire:
    """Instance-level unexpire()."""

    def test_unexpire_expired_record(self, session: Session, subscriptions: dict) -> None:
        record = subscriptions["B"]

        assert record.unexpire() is True

        assert reload(session, record).expired_at is None
        assert names(Subscription.query(session).all()) == {"A", "B", "C"}

    def test_unexpiring_veto(self, session: Session, subscriptions: dict) -> None:
        unexpired = MagicMock(return_value=None)
        Subscription.on_unexpiring(lambda record: False)
        Subscription.on_unexpired(unexpired)

        record = subscriptions["B"]
        original = record.expired_at

        assert record.unexpire() is False
        assert record.expired_at == original
        unexpired.assert_not_called()

    def test_unexpired_hook(self, session: Session, subscriptions: dict) -> None:
        unexpired = MagicMock(return_value=None)
        Subscription.on_unexpired(unexpired)

        subscriptions["B"].unexpire()

        unexpired.assert_called_once_with(subscriptions["B"])

    def test_round_trip(self, session: Session, subscriptions: dict) -> None:
        record = subscriptions["A"]

        record.expire()
        assert names(Subscription.query(session).all()) == {"C"}

        record.unexpire()
        assert names(Subscription.query(session).all()) == {"A", "C"}


class TestIsExpired:
    def test_states(self, subscriptions: dict) -> None:
        assert not subscriptions["A"].is_expired()
        assert subscriptions["B"].is_expired()
        assert not subscriptions["C"].is_expired()


class TestColumns:
    def test_default_column(self) -> None:
        assert Subscription.expired_at_column() == DEFAULT_EXPIRED_AT_COLUMN == "expired_at"
        assert Subscription.qualified_expired_at_column() == "subscriptions.expired_at"

    def test_override_column(self) -> None:
        assert Coupon.expired_at_column() == "retired_at"
        assert Coupon.qualified_expired_at_column() == "coupons.retired_at"

    def test_instance_access(self, subscriptions: dict) -> None:
        assert subscriptions["A"].expired_at_column() == "expired_at"


class TestEventRegistration:
    def test_events_declared_on_boot(self) -> None:
        observable = Subscription.observable_events()

        for event in ExpirationEvent:
            assert event.value in observable

    def test_event_kinds(self) -> None:
        assert ExpirationEvent.EXPIRING.kind is HookKind.GUARD
        assert ExpirationEvent.UNEXPIRING.kind is HookKind.GUARD
        assert ExpirationEvent.EXPIRED.kind is HookKind.NOTIFY
        assert ExpirationEvent.UNEXPIRED.kind is HookKind.NOTIFY

    def test_registrars_accumulate(self) -> None:
        first, second = MagicMock(), MagicMock()
        Subscription.on_expiring(first)
        Subscription.on_expiring(second)

        dispatcher = Subscription.model_registry().events
        assert dispatcher.listeners(ExpirationEvent.EXPIRING) == [first, second]

    def test_listeners_are_per_type(self) -> None:
        Subscription.on_expiring(MagicMock())

        assert not Coupon.model_registry().events.has_listeners(ExpirationEvent.EXPIRING)

    def test_flush_event_listeners(self) -> None:
        Subscription.on_expired(MagicMock())
        Subscription.flush_event_listeners()

        assert not Subscription.model_registry().events.has_listeners(ExpirationEvent.EXPIRED)

    def test_named_handler(self, session: Session, subscriptions: dict) -> None:
        Subscription.on_expired("conftest:ExpiredHandler")

        subscriptions["A"].expire()

        assert ExpiredHandler.calls == [subscriptions["A"]]

    def test_observer(self, session: Session, subscriptions: dict) -> None:
        class ProtectPremium:
            def expiring(self, record: Subscription) -> bool | None:
                return False if record.name == "C" else None

        Subscription.observe(ProtectPremium)
        original = subscriptions["C"].expired_at

        assert subscriptions["A"].expire() is True
        assert subscriptions["C"].expire() is False
        assert subscriptions["C"].expired_at == original
