import uuid
from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.exceptions import AlreadyPromoted, InvalidState, NotFound
from app.db.schema import Order, OrderStatus, SampleRequest, SampleStatus


class OrderPromoter:
    """
    Turns an approved sample into a bulk order.

    Promotion is a side channel: the sample's status and ledger are left
    untouched. At most one order may reference a sample; the pre-insert
    check gives a clear error and the unique constraint on Order.sample_id
    closes the race between two concurrent promotions.
    """

    def __init__(self, session: Session):
        self.session = session

    def _existing_order(self, sample_id: uuid.UUID) -> Optional[Order]:
        return self.session.exec(
            select(Order).where(Order.sample_id == sample_id)
        ).first()

    def promote(self, sample_id: uuid.UUID, quantity: Optional[int] = None) -> Order:
        sample = self.session.get(SampleRequest, sample_id)
        if not sample:
            raise NotFound("Sample request", sample_id)

        if sample.status != SampleStatus.APPROVED:
            raise InvalidState(
                f"Only approved samples can be promoted; sample '{sample_id}' is {sample.status.value}.")

        if self._existing_order(sample_id):
            raise AlreadyPromoted(sample_id)

        order = Order(
            sample_id=sample.id,
            brand_id=sample.brand_id,
            factory_id=sample.factory_id,
            rep_id=sample.rep_id,
            quantity=quantity or sample.preferred_moq or 1,
            status=OrderStatus.PENDING,
        )
        self.session.add(order)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise AlreadyPromoted(sample_id)

        self.session.refresh(order)
        logger.info(f"Sample {sample_id} promoted to order {order.id} (qty {order.quantity})")
        return order

    def get_order(self, order_id: uuid.UUID) -> Order:
        order = self.session.get(Order, order_id)
        if not order:
            raise NotFound("Order", order_id)
        return order

    def list_orders(self, brand_id: Optional[uuid.UUID] = None,
                    rep_id: Optional[uuid.UUID] = None) -> List[Order]:
        statement = select(Order)
        if brand_id:
            statement = statement.where(Order.brand_id == brand_id)
        if rep_id:
            statement = statement.where(Order.rep_id == rep_id)
        return list(self.session.exec(statement.order_by(Order.created_at.desc())).all())
