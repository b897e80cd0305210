import pytest

from tripstore.model.db import InquiryStatus, OrderStatus
from tripstore.model.inquiries import InquiryRepository
from tripstore.model.orders import (
    EventOutcome, OrderRepository, order_to_dict,
)
from tripstore.model.suggestions import SuggestionRepository


@pytest.fixture
async def session(database):
    async with database.session() as s:
        yield s


def _order_fields(**over):
    fields = dict(
        name="Ali", player_id="123", email="a@b.com",
        uc_amount=None, bundle="Prime", total_amount="12.5",
        transaction_id="TX1",
    )
    fields.update(over)
    return fields


async def test_order_lifecycle(database, session):
    repo = OrderRepository(session, database.gated)
    order = await repo.add(**_order_fields())
    assert order.id is not None
    assert order.purchase_type == "Bundle"
    assert order.status == OrderStatus.PENDING_PAYMENT.value

    d = order_to_dict(order)
    assert d["type"] == "Bundle"
    assert d["screenshotUrl"] is None
    assert d["statusKey"] == "pending-payment"

    updated = await repo.set_status(order.id, OrderStatus.FAILED)
    assert updated.status == OrderStatus.FAILED.value
    # terminal statuses can still be overwritten
    updated = await repo.set_status(order.id, OrderStatus.PAID)
    assert (await repo.get(order.id)).status == OrderStatus.PAID.value

    assert await repo.set_status(999, OrderStatus.PAID) is None

    deleted = await repo.delete(order.id)
    assert deleted.id == order.id
    assert await repo.get(order.id) is None
    assert await repo.delete(order.id) is None


async def test_orders_newest_first(database, session):
    repo = OrderRepository(session, database.gated)
    a = await repo.add(**_order_fields())
    b = await repo.add(**_order_fields(uc_amount="60", bundle=None,
                                       screenshot="x.jpg"))
    rows = await repo.list_all()
    assert [o.id for o in rows] == [b.id, a.id]
    assert rows[0].purchase_type == "UC"
    assert order_to_dict(rows[0])["screenshotUrl"].endswith(
        f"/{b.id}/screenshot"
    )


async def test_payment_event_applied_once(database, session):
    repo = OrderRepository(session, database.gated)
    order = await repo.add(**_order_fields())

    outcome, updated = await repo.apply_payment_event(
        order.id, OrderStatus.PAID, "evt_1"
    )
    assert outcome is EventOutcome.APPLIED
    assert updated.status == OrderStatus.PAID.value

    await repo.set_status(order.id, OrderStatus.PENDING_PAYMENT)
    outcome, updated = await repo.apply_payment_event(
        order.id, OrderStatus.PAID, "evt_1"
    )
    assert outcome is EventOutcome.REPLAY
    assert updated is None
    assert (await repo.get(order.id)).status == (
        OrderStatus.PENDING_PAYMENT.value
    )

    # events without a key are never deduplicated
    for _ in range(2):
        outcome, _order = await repo.apply_payment_event(
            order.id, OrderStatus.FAILED, None
        )
        assert outcome is EventOutcome.APPLIED


async def test_payment_event_for_missing_order(database, session):
    repo = OrderRepository(session, database.gated)
    outcome, order = await repo.apply_payment_event(
        42, OrderStatus.PAID, "evt_1"
    )
    assert outcome is EventOutcome.NOT_FOUND
    assert order is None

    # the key was not consumed by the miss
    real = await repo.add(**_order_fields())
    outcome, _order = await repo.apply_payment_event(
        real.id, OrderStatus.PAID, "evt_1"
    )
    assert outcome is EventOutcome.APPLIED


async def test_inquiry_repository(database, session):
    repo = InquiryRepository(session, database.gated)
    first = await repo.add(name=None, email="x@y.com", message="one")
    second = await repo.add(name="Sara", email="x@y.com", message="two")
    assert first.status == InquiryStatus.PENDING.value

    assert [i.id for i in await repo.list_all()] == [second.id, first.id]

    assert await repo.mark_replied(first.id) is True
    assert (await repo.get(first.id)).status == InquiryStatus.REPLIED.value
    assert await repo.mark_replied(999) is False

    assert await repo.delete(first.id) is True
    assert await repo.delete(first.id) is False


async def test_suggestion_repository(database, session):
    repo = SuggestionRepository(session, database.gated)
    s = await repo.add(name="Omar", contact="@o", message="more bundles")
    assert [x.id for x in await repo.list_all()] == [s.id]
    assert await repo.delete(s.id) is True
    assert await repo.list_all() == []
    assert await repo.delete(s.id) is False
