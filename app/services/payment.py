import uuid
from datetime import date, datetime
from typing import Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.config import settings
from app.core.exceptions import InvalidState, NotFound, PaymentGatewayError
from app.db.schema import (
    Brand, PaymentCustomer, PaymentStatus, PaymentType,
    SamplePayment, SampleRequest, SampleStatus
)
from app.domain.lifecycle import validate_invoice_terms
from app.integrations.payment_processor import (
    PaymentProcessor, get_payment_processor, to_minor_units
)
from app.models.payment import PaymentIntentRef, PaymentSheet


class PaymentGate:
    """
    Bridges sample invoicing to the external payment processor.

    Local payment rows are only written once the processor has returned an
    intent id, and a processor intent whose local write fails is cancelled,
    so neither side is ever left with an orphan.
    """

    def __init__(self, session: Session, processor: Optional[PaymentProcessor] = None):
        self.session = session
        self.processor = processor or get_payment_processor()

    def _get_sample(self, sample_id: uuid.UUID) -> SampleRequest:
        sample = self.session.get(SampleRequest, sample_id)
        if not sample:
            raise NotFound("Sample request", sample_id)
        return sample

    def _get_brand(self, brand_id: uuid.UUID) -> Brand:
        brand = self.session.get(Brand, brand_id)
        if not brand:
            raise NotFound("Brand", brand_id)
        return brand

    def _find_customer(self, brand_id: uuid.UUID) -> Optional[PaymentCustomer]:
        return self.session.exec(
            select(PaymentCustomer).where(PaymentCustomer.brand_id == brand_id)
        ).first()

    def ensure_customer(self, brand: Brand) -> PaymentCustomer:
        """
        Lookup-or-create of the brand's processor customer.

        The processor call carries an idempotency key derived from the brand
        id and the local row is unique per brand, so concurrent first-time
        callers converge on one customer. Commits on creation.
        """
        existing = self._find_customer(brand.id)
        if existing:
            return existing

        remote = self.processor.create_customer(
            brand_id=brand.id,
            email=brand.email,
            name=brand.name,
            idempotency_key=f"customer-{brand.id}",
        )

        customer = PaymentCustomer(brand_id=brand.id, processor_customer_id=remote.id)
        self.session.add(customer)
        try:
            self.session.commit()
        except IntegrityError:
            # Another request created it first
            self.session.rollback()
            existing = self._find_customer(brand.id)
            if not existing:
                raise
            logger.info(f"Processor customer for brand {brand.id} created concurrently; reusing")
            return existing

        self.session.refresh(customer)
        logger.info(f"Created processor customer {remote.id} for brand {brand.id}")
        return customer

    def request_invoice(
        self,
        sample_id: uuid.UUID,
        amount: float,
        currency: Optional[str],
        due_date: Optional[date],
        payment_type: PaymentType = PaymentType.DEPOSIT,
        commit: bool = True,
    ) -> PaymentIntentRef:
        """
        Creates a processor payment intent for a sample and records it locally.

        With commit=False the payment row is only flushed so the caller can
        commit it together with the lifecycle transition; the caller is then
        responsible for cancelling the intent if its unit of work fails.
        """
        validate_invoice_terms(amount, due_date)
        currency = (currency or settings.default_currency).lower()

        sample = self._get_sample(sample_id)
        brand = self._get_brand(sample.brand_id)
        customer = self.ensure_customer(brand)

        intent = self.processor.create_payment_intent(
            amount_minor=to_minor_units(amount),
            currency=currency,
            customer_id=customer.processor_customer_id,
            metadata={
                "sample_id": str(sample.id),
                "brand_id": str(brand.id),
                "payment_type": payment_type.value,
            },
            idempotency_key=f"intent-{sample.id}-{uuid.uuid4()}",
        )

        payment = SamplePayment(
            sample_id=sample.id,
            customer_id=customer.id,
            amount=amount,
            currency=currency,
            due_date=due_date,
            payment_type=payment_type,
            processor_intent_id=intent.id,
            client_secret=intent.client_secret,
            status=PaymentStatus.PENDING,
        )
        self.session.add(payment)

        try:
            if commit:
                self.session.commit()
                self.session.refresh(payment)
            else:
                self.session.flush()
        except Exception:
            self.session.rollback()
            logger.exception(f"Failed to record payment intent {intent.id}; cancelling it")
            self.cancel_intent(intent.id)
            raise

        logger.info(
            f"Payment intent {intent.id} created for sample {sample.id}: {amount} {currency.upper()}")

        return PaymentIntentRef(
            intent_id=intent.id,
            client_secret=intent.client_secret,
            payment_id=payment.id,
            amount=amount,
            currency=currency,
            due_date=due_date,
        )

    def cancel_intent(self, intent_id: str) -> None:
        """Best-effort cancellation used when the local side of an invoice fails."""
        try:
            self.processor.cancel_payment_intent(intent_id)
        except PaymentGatewayError as e:
            logger.error(f"Could not cancel orphaned payment intent {intent_id}: {e}")

    def _pending_payment(self, sample_id: uuid.UUID) -> Optional[SamplePayment]:
        return self.session.exec(
            select(SamplePayment)
            .where(SamplePayment.sample_id == sample_id)
            .where(SamplePayment.status == PaymentStatus.PENDING)
            .order_by(SamplePayment.created_at.desc())
        ).first()

    def confirm_payment(self, sample_id: uuid.UUID, commit: bool = True) -> SamplePayment:
        """
        Trusting confirmation: the client reports a successful collection and
        the pending payment is marked paid. Driving the 'sample_paid'
        transition is the lifecycle's job.
        """
        self._get_sample(sample_id)
        payment = self._pending_payment(sample_id)
        if not payment:
            raise InvalidState(f"Sample '{sample_id}' has no pending payment to confirm.")

        payment.status = PaymentStatus.PAID
        payment.paid_at = datetime.utcnow()
        self.session.add(payment)

        if commit:
            self.session.commit()
            self.session.refresh(payment)
        else:
            self.session.flush()

        logger.info(f"Payment {payment.processor_intent_id} confirmed for sample {sample_id}")
        return payment

    def payment_sheet(self, sample_id: uuid.UUID) -> PaymentSheet:
        """
        Returns what the client needs to collect payment, but only while a
        live intent backs the sample's current invoice and the sample is
        still waiting on it.
        """
        sample = self._get_sample(sample_id)
        if sample.status != SampleStatus.INVOICE_SENT:
            raise InvalidState(
                f"Sample '{sample_id}' is {sample.status.value}, not awaiting payment.")
        payment = self._pending_payment(sample_id)

        if (not payment or not payment.client_secret
                or payment.processor_intent_id != sample.payment_intent_id):
            raise InvalidState(f"Sample '{sample_id}' has no live payment intent.")

        return PaymentSheet(
            sample_id=sample.id,
            payment_id=payment.id,
            intent_id=payment.processor_intent_id,
            client_secret=payment.client_secret,
            amount=payment.amount,
            currency=payment.currency,
            due_date=payment.due_date,
            status=payment.status,
        )
