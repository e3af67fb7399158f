from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends

from app.core.dependencies import get_order_promoter
from app.models.order import OrderRead
from app.services.orders import OrderPromoter

router = APIRouter()


@router.get(
    "",
    response_model=List[OrderRead],
    summary="List Orders",
    description="Bulk orders promoted from approved samples, newest first."
)
def list_orders(
    brand_id: Optional[UUID] = None,
    rep_id: Optional[UUID] = None,
    promoter: OrderPromoter = Depends(get_order_promoter)
):
    return promoter.list_orders(brand_id=brand_id, rep_id=rep_id)


@router.get(
    "/{order_id}",
    response_model=OrderRead,
    summary="Get Order",
)
def get_order(
    order_id: UUID,
    promoter: OrderPromoter = Depends(get_order_promoter)
):
    return promoter.get_order(order_id)
