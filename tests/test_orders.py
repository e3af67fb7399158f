import threading

import pytest
from sqlmodel import Session, select

from app.core.exceptions import AlreadyPromoted, InvalidState
from app.db.core import engine
from app.db.schema import (
    Order, OrderStatus, SampleRequest, SampleStatus, SampleStatusHistory
)
from app.services.ledger import StatusLedger
from app.services.orders import OrderPromoter


def test_promote_uses_preferred_moq(session, approved_sample):
    order = OrderPromoter(session).promote(approved_sample.id)

    assert order.quantity == 100
    assert order.status == OrderStatus.PENDING
    assert order.sample_id == approved_sample.id
    assert order.brand_id == approved_sample.brand_id
    assert order.factory_id == approved_sample.factory_id
    assert order.rep_id == approved_sample.rep_id


def test_explicit_quantity_wins(session, approved_sample):
    order = OrderPromoter(session).promote(approved_sample.id, quantity=40)
    assert order.quantity == 40


def test_promotion_leaves_sample_untouched(session, approved_sample):
    before = [e.id for e in StatusLedger(session).entries(approved_sample.id)]

    OrderPromoter(session).promote(approved_sample.id)

    after = StatusLedger(session).entries(approved_sample.id)
    assert [e.id for e in after] == before
    assert session.get(SampleRequest, approved_sample.id).status == SampleStatus.APPROVED


@pytest.mark.parametrize("status", [SampleStatus.REQUESTED, SampleStatus.IN_REVIEW,
                                    SampleStatus.REJECTED, SampleStatus.DELIVERED])
def test_only_approved_samples_promote(session, service, make_sample, status):
    sample = make_sample()
    if status != SampleStatus.REQUESTED:
        service.transition(sample.id, status)

    with pytest.raises(InvalidState):
        OrderPromoter(session).promote(sample.id)
    assert session.exec(select(Order)).all() == []


def test_second_promotion_is_refused(session, approved_sample):
    promoter = OrderPromoter(session)
    promoter.promote(approved_sample.id)

    with pytest.raises(AlreadyPromoted) as exc:
        promoter.promote(approved_sample.id)
    assert exc.value.code == "ALREADY_PROMOTED"
    assert len(session.exec(select(Order)).all()) == 1


def test_concurrent_promotions_create_one_order(approved_sample):
    workers = 4
    barrier = threading.Barrier(workers)
    created, refused, crashed = [], [], []

    def worker():
        with Session(engine) as s:
            barrier.wait()
            try:
                created.append(OrderPromoter(s).promote(approved_sample.id).id)
            except AlreadyPromoted:
                refused.append(1)
            except Exception as e:
                crashed.append(e)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert crashed == []
    assert len(created) == 1
    assert len(refused) == workers - 1

    with Session(engine) as s:
        assert len(s.exec(select(Order)).all()) == 1
        statuses = s.exec(
            select(SampleStatusHistory.status)
            .where(SampleStatusHistory.sample_id == approved_sample.id)
        ).all()
        assert SampleStatus.APPROVED in statuses


def test_list_orders(session, approved_sample, brand):
    promoter = OrderPromoter(session)
    order = promoter.promote(approved_sample.id)

    assert [o.id for o in promoter.list_orders(brand_id=brand.id)] == [order.id]
    assert promoter.get_order(order.id).id == order.id
