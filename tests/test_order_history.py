from datetime import datetime, timedelta, timezone

import pytest

from marketplace.errors import InvalidCursor, OpenedOrdersUnreturnable
from marketplace.models import Order, OrderOrigin, OrderStatus
from marketplace.models.order import expiration_date_for
from marketplace.services.order_history import (
    build_order_list,
    decode_cursor,
    encode_cursor,
    list_user_orders,
    order_to_api,
)
from tests.conftest import make_order

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def test_expiration_date_depends_only_on_status_and_dates():
    created = NOW - timedelta(minutes=1)

    assert expiration_date_for(OrderStatus.OPENED.value, created, None) == created + timedelta(minutes=10)
    assert expiration_date_for(OrderStatus.PENDING.value, created, NOW) == NOW + timedelta(seconds=45)
    assert expiration_date_for(OrderStatus.COMPLETED.value, created, NOW) is None
    assert expiration_date_for(OrderStatus.FAILED.value, created, NOW) is None


def test_open_order_expires_after_ten_minutes():
    order = Order(origin=OrderOrigin.MARKETPLACE, status=OrderStatus.OPENED.value, created_date=NOW)

    assert not order.is_expired(NOW + timedelta(minutes=10))
    assert order.is_expired(NOW + timedelta(minutes=10, seconds=1))


def test_order_value_is_encoded_by_origin():
    marketplace = Order(origin=OrderOrigin.MARKETPLACE)
    marketplace.set_value({"coupon": "ABC"})
    external = Order(origin=OrderOrigin.EXTERNAL)
    external.set_value("signed-confirmation")

    assert marketplace.value == '{"coupon": "ABC"}'
    assert marketplace.get_value() == {"coupon": "ABC"}
    assert external.get_value() == "signed-confirmation"
    with pytest.raises(ValueError):
        external.set_value({"not": "a string"})


def test_order_rejects_unknown_origin():
    with pytest.raises(ValueError, match="unknown order origin"):
        Order(origin="partner")


def test_order_to_api_rejects_opened_orders(db, test_user, spend_offer):
    order = make_order(db, test_user, spend_offer, OrderStatus.OPENED)

    with pytest.raises(OpenedOrdersUnreturnable):
        order_to_api(order)


def test_order_to_api_marketplace_projection(db, test_user, earn_offer):
    order = make_order(db, test_user, earn_offer, OrderStatus.COMPLETED)
    order.blockchain_data = {"transaction_id": "tx1"}
    order.set_value({"points": 3})
    db.commit()

    response = order_to_api(order)

    assert response.origin == "marketplace"
    assert response.offer_type == "earn"
    assert response.result == {"points": 3}
    assert response.blockchain_data == {"transaction_id": "tx1"}
    assert response.completion_date == order.status_date.isoformat()


def test_order_to_api_external_projection(db, test_user, spend_offer):
    order = make_order(db, test_user, spend_offer, OrderStatus.PENDING, origin=OrderOrigin.EXTERNAL)
    order.meta = {"title": "Sword", "description": "shiny", "wallet_address": "GAPP"}
    db.commit()

    response = order_to_api(order)

    assert response.origin == "external"
    assert response.title == "Sword"
    assert response.blockchain_data == {"recipient_address": "GAPP"}


def test_reconcile_flips_expired_pending_order(db, test_user, earn_offer, reconciler, executor):
    order = make_order(db, test_user, earn_offer, OrderStatus.PENDING, status_date=NOW)
    order_id = order.id

    future = reconciler.reconcile(db, order, now=NOW + timedelta(seconds=46))

    assert order.status == OrderStatus.FAILED
    assert order.error["code"] == 7006
    assert not future.done()

    executor.run_pending()

    assert future.result() is True
    stored = db.query(Order).filter(Order.id == order_id).first()
    assert stored.status == OrderStatus.FAILED
    assert stored.error["error"] == "TransactionTimeout"


def test_reconcile_leaves_fresh_orders_alone(db, test_user, earn_offer, reconciler, executor):
    pending = make_order(db, test_user, earn_offer, OrderStatus.PENDING, status_date=NOW)
    completed = make_order(db, test_user, earn_offer, OrderStatus.COMPLETED, status_date=NOW - timedelta(hours=1))

    assert reconciler.reconcile(db, pending, now=NOW + timedelta(seconds=45)) is None
    assert reconciler.reconcile(db, completed, now=NOW) is None
    assert executor.pending == []


def test_reconcile_does_not_overwrite_a_confirmation(db, test_user, earn_offer, reconciler, executor):
    order = make_order(db, test_user, earn_offer, OrderStatus.PENDING, status_date=NOW)
    order_id = order.id

    future = reconciler.reconcile(db, order, now=NOW + timedelta(seconds=50))
    # confirmation lands before the timeout is persisted
    db.query(Order).filter(Order.id == order_id).update(
        {Order.status: OrderStatus.COMPLETED.value}, synchronize_session=False
    )
    db.commit()
    executor.run_pending()

    assert future.result() is False
    db.expire_all()
    assert db.query(Order).filter(Order.id == order_id).first().status == OrderStatus.COMPLETED


def test_cursor_round_trip_and_rejects_garbage(db, test_user, spend_offer):
    order = make_order(db, test_user, spend_offer, OrderStatus.COMPLETED, status_date=NOW)

    assert decode_cursor(encode_cursor(order)) == (NOW, order.id)
    with pytest.raises(InvalidCursor):
        decode_cursor("%%%")


def test_list_user_orders_filters_by_origin(db, test_user, spend_offer):
    make_order(db, test_user, spend_offer, OrderStatus.COMPLETED)
    external = make_order(db, test_user, spend_offer, OrderStatus.COMPLETED, origin=OrderOrigin.EXTERNAL)

    orders = list_user_orders(db, test_user.id, origin=OrderOrigin.EXTERNAL)

    assert [order.id for order in orders] == [external.id]


def test_build_order_list_links_pages(db, test_user, spend_offer, reconciler):
    for i in range(3):
        make_order(db, test_user, spend_offer, OrderStatus.COMPLETED, status_date=NOW - timedelta(seconds=i))

    page = build_order_list(db, reconciler, test_user.id, limit=2)

    assert len(page.orders) == 2
    assert page.paging.next.startswith("http://testserver/v1/orders?")
    assert "after=" in page.paging.next
    assert "before=" in page.paging.previous

    last = build_order_list(db, reconciler, test_user.id, limit=2, after=page.paging.cursors.after)
    assert len(last.orders) == 1
    assert last.paging.next is None


def test_build_order_list_clamps_limit(db, test_user, spend_offer, reconciler):
    make_order(db, test_user, spend_offer, OrderStatus.COMPLETED)

    page = build_order_list(db, reconciler, test_user.id, limit=1000)

    assert len(page.orders) == 1
    assert page.paging.next is None


def test_build_order_list_empty(db, test_user, reconciler):
    page = build_order_list(db, reconciler, test_user.id)

    assert page.orders == []
    assert page.paging.cursors.before is None
    assert page.paging.previous is None
