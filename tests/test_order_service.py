"""Tests for the order lifecycle (academy/services/orders.py)"""
import pytest
from datetime import datetime, timezone
from unittest.mock import patch

from academy.models.order import OrderStatus, DeliveryStatus
from academy.models.subscription import SubscriptionStatus
from academy.services import events
from academy.services.errors import InvalidState, NotFound, ValidationError
from academy.services.orders import (
    TextbookOrder,
    approve_order,
    cancel_order,
    confirm_deposit,
    create_order,
    update_delivery_status,
    update_tracking,
)
from conftest import make_course, make_order, make_subscription, make_user, logged_event_types

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)

ADDRESS = {
    "recipientName": "Nguyen Van A",
    "phone": "0901234567",
    "province": "Ha Noi",
    "district": "Cau Giay",
    "ward": "Dich Vong",
    "streetAddress": "12 Tran Thai Tong",
}


class TestCreateOrder:
    def test_course_only_order_is_pending_with_course_amount(self, mock_db):
        order = create_order(
            mock_db, make_user(), make_course(),
            months=3, course_amount=300000, depositor_name="Nguyen Van A",
        )

        assert order.amount == 300000
        assert order.status == OrderStatus.PENDING_PAYMENT
        assert order.deposit_confirmed is False
        assert order.has_textbook is False
        assert order.shipping_address is None
        assert order.course_name == "Korean for Beginners"
        mock_db.commit.assert_called_once()
        assert logged_event_types(mock_db) == [events.ORDER_CREATED]

    def test_textbook_order_adds_textbook_amount(self, mock_db):
        order = create_order(
            mock_db, make_user(), make_course(),
            months=6, course_amount=550000, depositor_name="Nguyen Van A",
            textbook=TextbookOrder(amount=50000, shipping_address=ADDRESS),
        )

        assert order.amount == 600000
        assert order.course_amount == 550000
        assert order.textbook_amount == 50000
        assert order.has_textbook is True
        assert order.shipping_address == ADDRESS

    def test_depositor_name_is_trimmed(self, mock_db):
        order = create_order(
            mock_db, make_user(), make_course(),
            months=3, course_amount=300000, depositor_name="  Tran Thi B ",
        )

        assert order.depositor_name == "Tran Thi B"

    def test_blank_depositor_name_rejected_before_any_write(self, mock_db):
        with pytest.raises(ValidationError):
            create_order(mock_db, make_user(), make_course(), months=3, course_amount=300000, depositor_name="   ")

        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_called()

    def test_incomplete_shipping_address_rejected(self, mock_db):
        address = dict(ADDRESS, ward="")

        with pytest.raises(ValidationError) as exc:
            create_order(
                mock_db, make_user(), make_course(),
                months=3, course_amount=300000, depositor_name="Nguyen Van A",
                textbook=TextbookOrder(amount=50000, shipping_address=address),
            )

        assert "ward" in exc.value.detail
        mock_db.add.assert_not_called()

    def test_missing_shipping_address_rejected(self, mock_db):
        with pytest.raises(ValidationError):
            create_order(
                mock_db, make_user(), make_course(),
                months=3, course_amount=300000, depositor_name="Nguyen Van A",
                textbook=TextbookOrder(amount=50000, shipping_address={}),
            )

    def test_non_positive_months_rejected(self, mock_db):
        with pytest.raises(ValidationError):
            create_order(mock_db, make_user(), make_course(), months=0, course_amount=300000, depositor_name="A")


class TestConfirmDeposit:
    def test_first_confirmation_sets_flag_and_timestamp(self, mock_db):
        order = make_order()
        mock_db.first.return_value = order

        result, already_requested = confirm_deposit(mock_db, 1, user_id=2, now=NOW)

        assert result is order
        assert already_requested is False
        assert order.deposit_confirmed is True
        assert order.deposit_confirmed_at == NOW
        assert order.status == OrderStatus.PENDING_PAYMENT
        assert logged_event_types(mock_db) == [events.ORDER_DEPOSIT_CONFIRMATION_REQUESTED]

    def test_repeat_confirmation_reports_already_requested(self, mock_db):
        earlier = datetime(2024, 1, 9, tzinfo=timezone.utc)
        order = make_order(deposit_confirmed=True, deposit_confirmed_at=earlier)
        mock_db.first.return_value = order

        _, already_requested = confirm_deposit(mock_db, 1, user_id=2, now=NOW)

        assert already_requested is True
        assert order.deposit_confirmed_at == earlier
        assert logged_event_types(mock_db) == []

    def test_unknown_or_foreign_order_is_not_found(self, mock_db):
        mock_db.first.return_value = None

        with pytest.raises(NotFound):
            confirm_deposit(mock_db, 99, user_id=2)

        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()

    def test_cancelled_order_cannot_be_confirmed(self, mock_db):
        mock_db.first.return_value = make_order(status=OrderStatus.CANCELLED)

        with pytest.raises(InvalidState):
            confirm_deposit(mock_db, 1, user_id=2)


class TestApproveOrder:
    def test_confirmed_order_becomes_paid_with_ready_subscription(self, mock_db):
        order = make_order(deposit_confirmed=True, deposit_confirmed_at=NOW)
        mock_db.first.side_effect = [order, make_user(), None]

        result, subscription = approve_order(mock_db, 1, actor_id=3, now=NOW)

        assert result.status == OrderStatus.PAID
        assert result.paid_at == NOW
        assert subscription.approved is True
        assert subscription.status == SubscriptionStatus.READY
        assert subscription.is_started is False
        assert subscription.months == 3
        assert subscription.order_id == 1
        assert subscription.user_id == 2
        assert subscription.course_id == 10
        mock_db.commit.assert_called_once()
        assert logged_event_types(mock_db) == [events.ORDER_APPROVED]

    def test_unconfirmed_order_can_be_approved(self, mock_db):
        order = make_order()
        mock_db.first.side_effect = [order, make_user(), None]

        result, _ = approve_order(mock_db, 1, now=NOW)

        assert result.status == OrderStatus.PAID

    def test_second_approval_fails_without_mutation(self, mock_db):
        order = make_order(status=OrderStatus.PAID, paid_at=NOW)
        mock_db.first.side_effect = [order]

        with pytest.raises(InvalidState):
            approve_order(mock_db, 1, now=datetime(2024, 2, 1, tzinfo=timezone.utc))

        assert order.paid_at == NOW
        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_called()

    def test_failure_mid_approval_rolls_back_everything(self, mock_db):
        order = make_order()
        mock_db.first.side_effect = [order, make_user(), None]

        with patch("academy.services.events.log_event", side_effect=RuntimeError("store unavailable")):
            with pytest.raises(RuntimeError):
                approve_order(mock_db, 1, now=NOW)

        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()

    def test_existing_subscription_is_replaced_not_extended(self, mock_db):
        existing = make_subscription(
            status=SubscriptionStatus.ACTIVE,
            is_started=True,
            months=12,
            order_id=7,
            start_date=datetime(2023, 12, 1, tzinfo=timezone.utc),
            end_date=datetime(2024, 12, 1, tzinfo=timezone.utc),
            expiry_warned_at=NOW,
        )
        order = make_order(id=8, months=3)
        mock_db.first.side_effect = [order, make_user(), existing]

        _, subscription = approve_order(mock_db, 8, now=NOW)

        assert subscription is existing
        assert subscription.status == SubscriptionStatus.READY
        assert subscription.is_started is False
        assert subscription.start_date is None
        assert subscription.end_date is None
        assert subscription.expiry_warned_at is None
        assert subscription.months == 3
        assert subscription.order_id == 8

    def test_textbook_order_starts_delivery(self, mock_db):
        order = make_order(has_textbook=True, textbook_amount=50000, amount=350000, shipping_address=ADDRESS)
        mock_db.first.side_effect = [order, make_user(), None]

        result, _ = approve_order(mock_db, 1, now=NOW)

        assert result.delivery_status == DeliveryStatus.PREPARING

    def test_missing_order_is_not_found(self, mock_db):
        with pytest.raises(NotFound):
            approve_order(mock_db, 404)


class TestCancelOrder:
    def test_pending_order_is_cancelled(self, mock_db):
        order = make_order()
        mock_db.first.return_value = order

        result = cancel_order(mock_db, 1, actor_id=3, now=NOW)

        assert result.status == OrderStatus.CANCELLED
        assert result.cancelled_at == NOW
        assert logged_event_types(mock_db) == [events.ORDER_CANCELLED]

    def test_paid_order_cannot_be_cancelled(self, mock_db):
        order = make_order(status=OrderStatus.PAID, paid_at=NOW)
        mock_db.first.return_value = order

        with pytest.raises(InvalidState):
            cancel_order(mock_db, 1)

        assert order.status == OrderStatus.PAID
        assert order.cancelled_at is None

    def test_cancelled_order_cannot_be_cancelled_again(self, mock_db):
        mock_db.first.return_value = make_order(status=OrderStatus.CANCELLED)

        with pytest.raises(InvalidState):
            cancel_order(mock_db, 1)


class TestDelivery:
    def _paid_textbook_order(self, delivery_status=DeliveryStatus.PREPARING):
        return make_order(
            status=OrderStatus.PAID,
            has_textbook=True,
            textbook_amount=50000,
            shipping_address=ADDRESS,
            delivery_status=delivery_status,
        )

    def test_delivery_moves_forward(self, mock_db):
        order = self._paid_textbook_order()
        mock_db.first.return_value = order

        result = update_delivery_status(mock_db, 1, DeliveryStatus.SHIPPED, actor_id=3)

        assert result.delivery_status == DeliveryStatus.SHIPPED
        assert logged_event_types(mock_db) == [events.ORDER_DELIVERY_UPDATED]

    def test_delivery_cannot_move_backwards(self, mock_db):
        mock_db.first.return_value = self._paid_textbook_order(DeliveryStatus.DELIVERED)

        with pytest.raises(InvalidState):
            update_delivery_status(mock_db, 1, DeliveryStatus.SHIPPED)

    def test_same_delivery_state_is_a_no_op(self, mock_db):
        mock_db.first.return_value = self._paid_textbook_order(DeliveryStatus.SHIPPED)

        result = update_delivery_status(mock_db, 1, DeliveryStatus.SHIPPED)

        assert result.delivery_status == DeliveryStatus.SHIPPED
        assert logged_event_types(mock_db) == []

    def test_delivery_rejected_for_pending_order(self, mock_db):
        mock_db.first.return_value = make_order(has_textbook=True, shipping_address=ADDRESS)

        with pytest.raises(InvalidState):
            update_delivery_status(mock_db, 1, DeliveryStatus.SHIPPED)

    def test_delivery_rejected_without_textbook(self, mock_db):
        mock_db.first.return_value = make_order(status=OrderStatus.PAID)

        with pytest.raises(InvalidState):
            update_delivery_status(mock_db, 1, DeliveryStatus.SHIPPED)

    def test_tracking_is_recorded(self, mock_db):
        order = self._paid_textbook_order(DeliveryStatus.SHIPPED)
        mock_db.first.return_value = order

        result = update_tracking(mock_db, 1, " 1Z999 ", "VNPost")

        assert result.tracking_number == "1Z999"
        assert result.tracking_carrier == "VNPost"

    def test_blank_tracking_number_rejected(self, mock_db):
        with pytest.raises(ValidationError):
            update_tracking(mock_db, 1, "  ")

        mock_db.query.assert_not_called()

    def test_tracking_rejected_for_cancelled_order(self, mock_db):
        mock_db.first.return_value = make_order(status=OrderStatus.CANCELLED, has_textbook=True)

        with pytest.raises(InvalidState):
            update_tracking(mock_db, 1, "1Z999")
