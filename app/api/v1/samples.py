from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, BackgroundTasks, Depends, status

from app.core.dependencies import (
    get_ledger, get_lifecycle_service, get_order_promoter, get_payment_gate
)
from app.db.schema import SampleStatus
from app.models.order import OrderPromote, OrderRead
from app.models.payment import InvoiceCreate, PaymentSheet
from app.models.sample import RepAssignment, SampleCreate, SampleRead
from app.models.status_history import StatusHistoryRead, TimelineRead, TransitionRequest
from app.services.ledger import StatusLedger
from app.services.lifecycle import SampleLifecycleService
from app.services.orders import OrderPromoter
from app.services.payment import PaymentGate

router = APIRouter()


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=SampleRead,
    summary="Request a Sample",
    description=(
        "Brand submits a sample request against a factory. The factory's rep is "
        "assigned (or the next active rep in rotation) and notified."
    )
)
def create_sample(
    data: SampleCreate,
    background_tasks: BackgroundTasks,
    service: SampleLifecycleService = Depends(get_lifecycle_service)
):
    return service.create_sample(data, background_tasks)


@router.get(
    "",
    response_model=List[SampleRead],
    summary="List Sample Requests",
)
def list_samples(
    brand_id: Optional[UUID] = None,
    rep_id: Optional[UUID] = None,
    factory_id: Optional[UUID] = None,
    status: Optional[SampleStatus] = None,
    service: SampleLifecycleService = Depends(get_lifecycle_service)
):
    return service.list_samples(
        brand_id=brand_id, rep_id=rep_id, factory_id=factory_id, status=status)


@router.get(
    "/{sample_id}",
    response_model=SampleRead,
    summary="Get Sample Request",
)
def get_sample(
    sample_id: UUID,
    service: SampleLifecycleService = Depends(get_lifecycle_service)
):
    return service.get_sample(sample_id)


@router.get(
    "/{sample_id}/history",
    response_model=List[StatusHistoryRead],
    summary="Status History",
    description="Ledger entries oldest first, with a synthetic leading 'requested' entry when none was recorded."
)
def get_history(
    sample_id: UUID,
    ledger: StatusLedger = Depends(get_ledger)
):
    return ledger.list(sample_id)


@router.get(
    "/{sample_id}/timeline",
    response_model=TimelineRead,
    summary="Status Timeline",
    description="Canonical pipeline stages with completion flags, for the timeline view."
)
def get_timeline(
    sample_id: UUID,
    ledger: StatusLedger = Depends(get_ledger)
):
    return ledger.timeline(sample_id)


@router.post(
    "/{sample_id}/transitions",
    status_code=status.HTTP_201_CREATED,
    response_model=StatusHistoryRead,
    summary="Update Sample Status",
    description=(
        "Moves the sample to a new status. Backward and self transitions are rejected. "
        "Moving to 'invoice_sent' without a payment intent reference creates one."
    )
)
def transition_sample(
    sample_id: UUID,
    payload: TransitionRequest,
    background_tasks: BackgroundTasks,
    service: SampleLifecycleService = Depends(get_lifecycle_service)
):
    return service.transition(
        sample_id, payload.status, fields=payload, background_tasks=background_tasks)


@router.post(
    "/{sample_id}/invoice",
    status_code=status.HTTP_201_CREATED,
    response_model=StatusHistoryRead,
    summary="Send Invoice",
    description="Rep invoices the brand: creates the payment intent and records 'invoice_sent'."
)
def send_invoice(
    sample_id: UUID,
    payload: InvoiceCreate,
    background_tasks: BackgroundTasks,
    service: SampleLifecycleService = Depends(get_lifecycle_service)
):
    return service.send_invoice(
        sample_id,
        amount=payload.amount,
        due_date=payload.due_date,
        currency=payload.currency,
        notes=payload.notes,
        background_tasks=background_tasks,
    )


@router.get(
    "/{sample_id}/payment-sheet",
    response_model=PaymentSheet,
    summary="Get Payment Sheet",
    description="Client secret for collecting payment. Only available while a live payment intent exists."
)
def get_payment_sheet(
    sample_id: UUID,
    gate: PaymentGate = Depends(get_payment_gate)
):
    return gate.payment_sheet(sample_id)


@router.post(
    "/{sample_id}/payment/confirm",
    status_code=status.HTTP_201_CREATED,
    response_model=StatusHistoryRead,
    summary="Confirm Payment",
    description="Client reports a successful payment; marks it paid and records 'sample_paid'."
)
def confirm_payment(
    sample_id: UUID,
    background_tasks: BackgroundTasks,
    service: SampleLifecycleService = Depends(get_lifecycle_service)
):
    return service.confirm_payment(sample_id, background_tasks)


@router.post(
    "/{sample_id}/rep",
    response_model=SampleRead,
    summary="Reassign Rep",
)
def reassign_rep(
    sample_id: UUID,
    payload: RepAssignment,
    service: SampleLifecycleService = Depends(get_lifecycle_service)
):
    return service.reassign_rep(sample_id, payload.rep_id)


@router.post(
    "/{sample_id}/promote",
    status_code=status.HTTP_201_CREATED,
    response_model=OrderRead,
    summary="Promote to Order",
    description="Creates the bulk order for an approved sample. A sample can be promoted once."
)
def promote_sample(
    sample_id: UUID,
    payload: Optional[OrderPromote] = None,
    promoter: OrderPromoter = Depends(get_order_promoter)
):
    return promoter.promote(sample_id, quantity=payload.quantity if payload else None)
