"""Tests for converting reservations into redemptions."""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest

from app.models.customer import Customer
from app.models.discount_redemption import DiscountRedemption
from app.models.discount_reservation import DiscountReservation
from app.services.discount_errors import DiscountError, DiscountErrorCode
from app.services.discount_redemption_service import DiscountRedemptionService
from app.services.discount_reservation_service import DiscountReservationService


@pytest.fixture
def reservations(db_session):
    return DiscountReservationService(db_session)


@pytest.fixture
def service(db_session):
    return DiscountRedemptionService(db_session)


class TestRedeemReservation:
    def test_converts_live_reservation(self, service, reservations, db_session, make_code, now):
        code = make_code("SAVE50")
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)

        result = service.redeem(
            "sub_123",
            reservation_id=reserved.reservation_id,
            customer_name="Ada",
            now=now + timedelta(minutes=3),
        )

        assert result.replayed is False
        assert result.redemption.reservation_id == reserved.reservation_id
        assert result.redemption.provider_subscription_id == "sub_123"

        db_session.refresh(code)
        assert code.current_uses == 1
        assert code.reserved_uses == 0

        reservation = db_session.get(DiscountReservation, reserved.reservation_id)
        assert reservation.redeemed_at is not None
        assert reservation.released_at is None

        customer = db_session.query(Customer).one()
        assert customer.email == "a@example.com"
        assert customer.name == "Ada"
        assert result.redemption.customer_id == customer.id

    def test_redeemed_one_second_before_expiry(self, service, reservations, db_session, make_code, now):
        code = make_code("SAVE50")
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)

        result = service.redeem(
            "sub_123",
            reservation_id=reserved.reservation_id,
            now=reserved.expires_at - timedelta(seconds=1),
        )

        assert result.redemption.reservation_id == reserved.reservation_id
        db_session.refresh(code)
        assert code.current_uses == 1
        assert code.reserved_uses == 0

    def test_by_customer_email_and_code(self, service, reservations, db_session, make_code, now):
        code = make_code("SAVE50")
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)

        result = service.redeem(
            "sub_123", customer_email="A@Example.com", code="save50", now=now + timedelta(minutes=1)
        )

        assert result.redemption.reservation_id == reserved.reservation_id
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 0)

    def test_by_code_without_reservation_uses_capacity(self, service, db_session, make_code, now):
        code = make_code("SAVE50", max_uses=2)

        result = service.redeem("sub_123", customer_email="a@example.com", code="SAVE50", now=now)

        assert result.redemption.reservation_id is None
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 0)


class TestIdempotency:
    def test_second_delivery_returns_first_result(self, service, reservations, db_session, make_code, now):
        code = make_code("SAVE50")
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)

        first = service.redeem("sub_123", reservation_id=reserved.reservation_id, now=now)
        second = service.redeem("sub_123", reservation_id=reserved.reservation_id, now=now)

        assert second.replayed is True
        assert second.redemption.id == first.redemption.id
        assert second.redemption.redeemed_at == first.redemption.redeemed_at
        assert db_session.query(DiscountRedemption).count() == 1
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 0)

    def test_replay_checked_before_anything_else(self, service, reservations, db_session, make_code, now):
        code = make_code("SAVE50")
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)
        service.redeem("sub_123", reservation_id=reserved.reservation_id, now=now)

        # Code later deactivated and exhausted: the replay must still succeed
        code.is_active = False
        code.max_uses = 1
        db_session.commit()

        replay = service.redeem("sub_123", customer_email="x@example.com", code="GONE", now=now)
        assert replay.replayed is True

    def test_concurrent_duplicate_insert_is_replayed(self, service, reservations, db_session, make_code, now):
        code = make_code("SAVE50")
        first = service.redeem("sub_123", customer_email="a@example.com", code="SAVE50", now=now)
        first_id = first.redemption.id
        other = reservations.reserve("SAVE50", "b@example.com", now=now)

        # The idempotency lookup misses because the other delivery has not committed yet
        with patch.object(
            service.redemption_repo,
            "get_by_provider_subscription_id",
            side_effect=[None, first.redemption],
        ):
            result = service.redeem("sub_123", reservation_id=other.reservation_id, now=now)

        assert result.replayed is True
        assert result.redemption.id == first_id
        assert db_session.query(DiscountRedemption).count() == 1
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 1)


class TestLapsedReservation:
    def test_lapsed_reservation_converts_when_capacity_remains(
        self, service, reservations, db_session, make_code, now
    ):
        code = make_code("SAVE50", max_uses=5)
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)

        result = service.redeem(
            "sub_123", reservation_id=reserved.reservation_id, now=now + timedelta(minutes=20)
        )

        assert result.redemption.reservation_id is None
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 0)
        reservation = db_session.get(DiscountReservation, reserved.reservation_id)
        assert reservation.released_at is not None
        assert reservation.redeemed_at is not None

    def test_swept_reservation_converts_when_capacity_remains(
        self, service, reservations, db_session, make_code, now
    ):
        code = make_code("SAVE50", max_uses=5)
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)
        reservations.release(reserved.reservation_id, now=now + timedelta(minutes=16))

        service.redeem("sub_123", reservation_id=reserved.reservation_id, now=now + timedelta(minutes=20))

        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 0)

    def test_lapsed_reservation_fails_when_code_full(
        self, service, reservations, db_session, make_code, now
    ):
        code = make_code("LAST", max_uses=1)
        lapsed = reservations.reserve("LAST", "a@example.com", now=now)
        # Someone else takes the slot after the first hold lapsed
        taken = reservations.reserve("LAST", "b@example.com", now=now + timedelta(minutes=16))

        with pytest.raises(DiscountError) as exc_info:
            service.redeem("sub_late", reservation_id=lapsed.reservation_id, now=now + timedelta(minutes=17))

        assert exc_info.value.code == DiscountErrorCode.MAX_USES
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (0, 1)
        assert db_session.query(DiscountRedemption).count() == 0

        # The slot holder can still complete
        service.redeem("sub_ok", reservation_id=taken.reservation_id, now=now + timedelta(minutes=18))
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 0)


class TestRejections:
    def test_unknown_reservation(self, service):
        with pytest.raises(DiscountError) as exc_info:
            service.redeem("sub_1", reservation_id=uuid4())
        assert exc_info.value.code == DiscountErrorCode.INVALID_REQUEST

    def test_unknown_code(self, service):
        with pytest.raises(DiscountError) as exc_info:
            service.redeem("sub_1", customer_email="a@example.com", code="NOPE")
        assert exc_info.value.code == DiscountErrorCode.INVALID_CODE

    def test_missing_reference(self, service):
        with pytest.raises(DiscountError) as exc_info:
            service.redeem("sub_1", customer_email="a@example.com")
        assert exc_info.value.code == DiscountErrorCode.INVALID_REQUEST

    def test_missing_subscription_id(self, service):
        with pytest.raises(DiscountError) as exc_info:
            service.redeem("", reservation_id=uuid4())
        assert exc_info.value.code == DiscountErrorCode.INVALID_REQUEST

    def test_reservation_redeemed_under_another_subscription(
        self, service, reservations, db_session, make_code, now
    ):
        code = make_code("SAVE50")
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)
        service.redeem("sub_1", reservation_id=reserved.reservation_id, now=now)

        with pytest.raises(DiscountError) as exc_info:
            service.redeem("sub_2", reservation_id=reserved.reservation_id, now=now)

        assert exc_info.value.code == DiscountErrorCode.ALREADY_USED
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 0)

    def test_lapsed_reservation_converts_only_once(
        self, service, reservations, db_session, make_code, now
    ):
        code = make_code("SAVE50", max_uses=5)
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)
        service.redeem("sub_1", reservation_id=reserved.reservation_id, now=now + timedelta(minutes=20))

        with pytest.raises(DiscountError) as exc_info:
            service.redeem("sub_2", reservation_id=reserved.reservation_id, now=now + timedelta(minutes=21))

        assert exc_info.value.code == DiscountErrorCode.ALREADY_USED
        db_session.refresh(code)
        assert (code.current_uses, code.reserved_uses) == (1, 0)
        assert db_session.query(DiscountRedemption).count() == 1

    def test_swept_reservation_converts_only_once(
        self, service, reservations, db_session, make_code, now
    ):
        code = make_code("SAVE50", max_uses=5)
        reserved = reservations.reserve("SAVE50", "a@example.com", now=now)
        reservations.release(reserved.reservation_id, now=now + timedelta(minutes=16))
        service.redeem("sub_1", reservation_id=reserved.reservation_id, now=now + timedelta(minutes=20))

        with pytest.raises(DiscountError) as exc_info:
            service.redeem("sub_2", reservation_id=reserved.reservation_id, now=now + timedelta(minutes=21))

        assert exc_info.value.code == DiscountErrorCode.ALREADY_USED
        db_session.refresh(code)
        assert code.current_uses == 1
        assert db_session.query(DiscountRedemption).count() == 1
