import uuid
from datetime import date, datetime
from typing import List, Optional

from fastapi import BackgroundTasks
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
from sqlmodel import Session, select

from app.core.exceptions import AssignmentError, InvalidTransition, NotFound
from app.core.locks import sample_locks
from app.db.schema import (
    Brand, Factory, Rep, SampleRequest, SampleStatus, SampleStatusHistory
)
from app.domain.assignment import assign_rep
from app.domain.lifecycle import (
    assert_transition, requires_payment_intent, validate_invoice_terms
)
from app.models.sample import SampleCreate
from app.models.status_history import TransitionFields
from app.services.ledger import StatusLedger, normalize_eta
from app.services.notifications import NotificationDispatcher, build_sample_events
from app.services.payment import PaymentGate


class SampleLifecycleService:
    """
    Owns every write to a sample request's status.

    A transition is one unit of work: the ledger entry, the denormalized
    status and any invoice rows commit together or not at all. Writes for
    the same sample are serialised; notifications are scheduled only after
    the commit and can never fail the transition.
    """

    def __init__(
        self,
        session: Session,
        payment_gate: Optional[PaymentGate] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.session = session
        self.ledger = StatusLedger(session)
        self.payment_gate = payment_gate or PaymentGate(session)
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = NotificationDispatcher()
        return self._dispatcher

    # ==========================================================================
    # READS
    # ==========================================================================

    def get_sample(self, sample_id: uuid.UUID) -> SampleRequest:
        sample = self.session.get(SampleRequest, sample_id)
        if not sample:
            raise NotFound("Sample request", sample_id)
        return sample

    def list_samples(
        self,
        brand_id: Optional[uuid.UUID] = None,
        rep_id: Optional[uuid.UUID] = None,
        factory_id: Optional[uuid.UUID] = None,
        status: Optional[SampleStatus] = None,
    ) -> List[SampleRequest]:
        statement = select(SampleRequest)
        if brand_id:
            statement = statement.where(SampleRequest.brand_id == brand_id)
        if rep_id:
            statement = statement.where(SampleRequest.rep_id == rep_id)
        if factory_id:
            statement = statement.where(SampleRequest.factory_id == factory_id)
        if status:
            statement = statement.where(SampleRequest.status == status)

        return list(self.session.exec(
            statement.order_by(SampleRequest.created_at.desc())
        ).all())

    # ==========================================================================
    # CREATION + ASSIGNMENT
    # ==========================================================================

    def create_sample(self, data: SampleCreate,
                      background_tasks: Optional[BackgroundTasks] = None) -> SampleRequest:
        """
        Brand submits a sample request against a factory.
        The rep is the factory's own (re-validated to a rep id) or the next
        active rep in rotation.
        """
        if not self.session.get(Brand, data.brand_id):
            raise NotFound("Brand", data.brand_id)

        factory = self.session.get(Factory, data.factory_id)
        if not factory:
            raise NotFound("Factory", data.factory_id)

        reps = list(self.session.exec(select(Rep)).all())
        rotation = self.session.exec(
            select(func.count()).select_from(SampleRequest)).one()
        rep_id = assign_rep(factory, reps, rotation=rotation)

        sample = SampleRequest(
            **data.model_dump(),
            rep_id=rep_id,
            status=SampleStatus.REQUESTED,
        )
        self.session.add(sample)
        self.session.commit()
        self.session.refresh(sample)

        logger.info(
            f"Sample {sample.id} requested by brand {sample.brand_id} "
            f"from factory {factory.id}; assigned rep {rep_id}")

        self._schedule_notifications(sample, None, background_tasks)
        return sample

    def reassign_rep(self, sample_id: uuid.UUID, rep_id: uuid.UUID) -> SampleRequest:
        """
        Manually hands a sample to another active rep.
        Accepts either the rep id or the rep's user id.
        """
        with sample_locks.hold(sample_id):
            sample = self.get_sample(sample_id)

            rep = self.session.get(Rep, rep_id)
            if rep is None:
                rep = self.session.exec(select(Rep).where(Rep.user_id == rep_id)).first()
            if rep is None:
                raise NotFound("Rep", rep_id)
            if not rep.active:
                raise AssignmentError(f"Rep '{rep.id}' is not active.")

            sample.rep_id = rep.id
            sample.updated_at = datetime.utcnow()
            self.session.add(sample)
            self.session.commit()
            self.session.refresh(sample)

        logger.info(f"Sample {sample_id} reassigned to rep {rep.id}")
        return sample

    # ==========================================================================
    # TRANSITIONS
    # ==========================================================================

    def _lock_sample(self, sample_id: uuid.UUID) -> SampleRequest:
        """Re-reads the sample under a row lock (no-op on SQLite)."""
        sample = self.session.exec(
            select(SampleRequest)
            .where(SampleRequest.id == sample_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if not sample:
            raise NotFound("Sample request", sample_id)
        return sample

    def _precheck(self, sample: SampleRequest, target: SampleStatus,
                  fields: TransitionFields) -> bool:
        """
        Validates everything that can be validated without side effects.
        Returns True when the payment gate must create the invoice.
        """
        assert_transition(sample.status, target)
        normalize_eta(fields.eta)

        if not requires_payment_intent(target):
            return False

        needs_invoice = not fields.payment_intent_id
        if needs_invoice or fields.amount is not None or fields.due_date is not None:
            validate_invoice_terms(fields.amount, fields.due_date)
        return needs_invoice

    def transition(
        self,
        sample_id: uuid.UUID,
        target: SampleStatus,
        fields: Optional[TransitionFields] = None,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> SampleStatusHistory:
        fields = fields or TransitionFields()

        with sample_locks.hold(sample_id):
            sample = self.get_sample(sample_id)
            needs_invoice = self._precheck(sample, target, fields)

            if needs_invoice:
                # Commits on its own when the customer is new; nothing else is pending yet
                brand = self.session.get(Brand, sample.brand_id)
                if not brand:
                    raise NotFound("Brand", sample.brand_id)
                self.payment_gate.ensure_customer(brand)

            sample = self._lock_sample(sample_id)
            assert_transition(sample.status, target)

            created_intent = None
            try:
                if needs_invoice:
                    ref = self.payment_gate.request_invoice(
                        sample.id, fields.amount, fields.currency, fields.due_date,
                        payment_type=fields.payment_type, commit=False)
                    created_intent = ref.intent_id
                    fields = fields.model_copy(update={
                        "payment_intent_id": ref.intent_id,
                        "currency": ref.currency,
                    })

                if requires_payment_intent(target):
                    sample.payment_intent_id = fields.payment_intent_id
                    if fields.amount is not None:
                        sample.invoice_amount = fields.amount
                        sample.invoice_currency = (fields.currency or "").lower() or None
                        sample.invoice_due_date = fields.due_date

                entry = self.ledger.append(sample.id, target, fields, commit=False)

                sample.status = target
                sample.updated_at = datetime.utcnow()
                self.session.add(sample)
                self.session.commit()
            except IntegrityError as e:
                self._abort(created_intent)
                logger.warning(f"Concurrent write on sample {sample_id}: {e}")
                raise InvalidTransition(
                    f"Sample '{sample_id}' was modified concurrently; retry the transition.")
            except Exception:
                self._abort(created_intent)
                raise

            self.session.refresh(entry)

        logger.info(f"Sample {sample_id} -> {target.value} (seq {entry.sequence})")
        self._schedule_notifications(sample, entry, background_tasks)
        return entry

    def _abort(self, intent_id: Optional[str]) -> None:
        self.session.rollback()
        if intent_id:
            self.payment_gate.cancel_intent(intent_id)

    def send_invoice(
        self,
        sample_id: uuid.UUID,
        amount: float,
        due_date: date,
        currency: Optional[str] = None,
        notes: Optional[str] = None,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> SampleStatusHistory:
        """Rep invoices the sample: payment intent + 'invoice_sent' in one step."""
        if notes is None and amount and due_date:
            notes = f"Invoice sent for {amount:,.2f} {(currency or 'usd').upper()}, due on {due_date.isoformat()}"

        return self.transition(
            sample_id,
            SampleStatus.INVOICE_SENT,
            TransitionFields(amount=amount, due_date=due_date, currency=currency, notes=notes),
            background_tasks=background_tasks,
        )

    def confirm_payment(self, sample_id: uuid.UUID,
                        background_tasks: Optional[BackgroundTasks] = None) -> SampleStatusHistory:
        """
        Client-reported payment success: marks the payment paid and moves the
        sample to 'sample_paid' in one unit of work.
        """
        with sample_locks.hold(sample_id):
            sample = self._lock_sample(sample_id)
            assert_transition(sample.status, SampleStatus.SAMPLE_PAID)

            try:
                payment = self.payment_gate.confirm_payment(sample.id, commit=False)
                entry = self.ledger.append(
                    sample.id,
                    SampleStatus.SAMPLE_PAID,
                    TransitionFields(payment_intent_id=payment.processor_intent_id),
                    commit=False,
                )
                sample.status = SampleStatus.SAMPLE_PAID
                sample.updated_at = datetime.utcnow()
                self.session.add(sample)
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise

            self.session.refresh(entry)

        logger.info(f"Sample {sample_id} paid ({payment.processor_intent_id})")
        self._schedule_notifications(sample, entry, background_tasks)
        return entry

    # ==========================================================================
    # NOTIFICATIONS
    # ==========================================================================

    def _schedule_notifications(
        self,
        sample: SampleRequest,
        entry: Optional[SampleStatusHistory],
        background_tasks: Optional[BackgroundTasks],
    ) -> None:
        """Fire-and-forget: anything that goes wrong here is logged, never raised."""
        if background_tasks is None:
            return

        try:
            self.session.refresh(sample)
            for event in build_sample_events(self.session, sample, entry):
                background_tasks.add_task(self.dispatcher.dispatch, event)
        except Exception:
            logger.exception(f"Could not schedule notifications for sample {sample.id}")
