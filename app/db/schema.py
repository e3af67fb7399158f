from typing import Optional, List, Dict, Any
from datetime import datetime, date
import uuid
from sqlmodel import SQLModel, Field, Relationship, JSON, UniqueConstraint
from enum import Enum


class SampleStatus(str, Enum):
    REQUESTED = "requested"          # Brand submitted the request
    INVOICE_SENT = "invoice_sent"    # Rep issued an invoice + payment intent
    SAMPLE_PAID = "sample_paid"      # Brand paid the invoice
    IN_PRODUCTION = "in_production"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    # Review branch
    IN_REVIEW = "in_review"
    APPROVED = "approved"            # Eligible for order promotion
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    DEPOSIT = "deposit"
    FINAL = "final"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PRODUCTION = "in_production"
    QUALITY_CHECK = "quality_check"
    COMPLETED = "completed"


class NotificationType(str, Enum):
    SAMPLE_REQUEST = "sample_request"
    SAMPLE_STATUS = "sample_status"
    SAMPLE_SHIPPED = "sample_shipped"
    SAMPLE_DELIVERED = "sample_delivered"


class TimestampMixin(SQLModel):
    """
    Standard audit timestamps for mutable records.
    """
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="The exact UTC timestamp when this record was first persisted. Example: '2025-07-02 14:30:00'"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
        description="The exact UTC timestamp when this record was last modified. Updates automatically."
    )


class Brand(TimestampMixin, SQLModel, table=True):
    """
    An apparel brand that requests samples from factories.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the brand."
    )
    user_id: Optional[uuid.UUID] = Field(
        default=None,
        index=True,
        description="The auth user that owns this brand account. Notifications are addressed to this id."
    )
    name: str = Field(
        index=True,
        description="The display name of the brand. Example: 'Acme Clothing Co.'"
    )
    email: Optional[str] = Field(
        default=None,
        description="Contact address used for email notifications and processor customers. Example: 'buying@acme.com'"
    )

    samples: List["SampleRequest"] = Relationship(back_populates="brand")


class Rep(TimestampMixin, SQLModel, table=True):
    """
    A human sales representative assigned to factories.
    Reps are the primary recipients of sample lifecycle notifications.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the rep."
    )
    user_id: Optional[uuid.UUID] = Field(
        default=None,
        index=True,
        description="The auth user behind this rep. Upstream data sometimes stores this value where a rep id is expected."
    )
    name: str = Field(description="The rep's display name. Example: 'Sara Khan'")
    email: Optional[str] = Field(
        default=None,
        description="Address for email notifications. Example: 'sara@maryadha.com'"
    )
    active: bool = Field(
        default=True,
        description="Only active reps take part in round-robin assignment."
    )


class Factory(TimestampMixin, SQLModel, table=True):
    """
    A leather-goods factory that produces samples and bulk orders.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the factory."
    )
    name: str = Field(index=True, description="Example: 'Sialkot Leather Works'")
    location: Optional[str] = Field(default=None, description="Example: 'Sialkot, PK'")
    minimum_order_quantity: int = Field(
        default=0,
        description="The factory's minimum bulk order size. Example: 100"
    )
    rep_id: Optional[uuid.UUID] = Field(
        default=None,
        description="The factory's current rep. May hold a rep id or the rep's user id."
    )


class SampleRequest(TimestampMixin, SQLModel, table=True):
    """
    The aggregate root of the sample lifecycle.
    `status` is denormalized: it always equals the status of the latest
    SampleStatusHistory entry (or 'requested' when none exist).
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="Unique ID for this sample request."
    )
    brand_id: uuid.UUID = Field(foreign_key="brand.id", index=True)
    factory_id: uuid.UUID = Field(foreign_key="factory.id", index=True)
    rep_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="rep.id",
        index=True,
        description="The rep responsible for this request. Always a rep id, never a user id."
    )
    status: SampleStatus = Field(
        default=SampleStatus.REQUESTED,
        index=True,
        description="Current lifecycle status. Example: 'in_production'"
    )

    # Immutable request details
    product_name: Optional[str] = Field(default=None, description="Example: 'Tote bag, full grain'")
    quantity: Optional[int] = Field(default=None, description="Number of sample units requested.")
    preferred_moq: Optional[int] = Field(
        default=None,
        description="The brand's preferred minimum order quantity for the bulk order. Example: 100"
    )
    delivery_address: Optional[str] = Field(default=None)
    comments: Optional[str] = Field(default=None)
    finish_notes: Optional[str] = Field(default=None)
    file_url: Optional[str] = Field(default=None, description="Tech pack URL.")
    reference_images: List[str] = Field(
        default_factory=list,
        sa_type=JSON,
        description="Opaque URLs of reference images."
    )

    # Invoice metadata
    payment_intent_id: Optional[str] = Field(
        default=None,
        description="Processor payment intent reference. Set on 'invoice_sent'. Example: 'pi_3Nx...'"
    )
    invoice_amount: Optional[float] = Field(default=None)
    invoice_currency: Optional[str] = Field(default=None)
    invoice_due_date: Optional[date] = Field(default=None)

    brand: Optional[Brand] = Relationship(back_populates="samples")
    history: List["SampleStatusHistory"] = Relationship(back_populates="sample")


class SampleStatusHistory(SQLModel, table=True):
    """
    The status ledger. One immutable row per accepted transition.
    (sample_id, sequence) is unique so two writers can never claim the
    same position in a sample's history.
    """
    __table_args__ = (
        UniqueConstraint("sample_id", "sequence", name="uq_status_history_sequence"),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="Unique ID for this ledger entry."
    )
    sample_id: uuid.UUID = Field(foreign_key="samplerequest.id", index=True)
    sequence: int = Field(description="1-based position of this entry in the sample's history.")
    status: SampleStatus = Field(description="The status entered by this transition.")
    notes: Optional[str] = Field(default=None)
    eta: Optional[date] = Field(
        default=None,
        description="Estimated delivery date (calendar date only). Example: '2025-08-14'"
    )
    tracking_number: Optional[str] = Field(default=None)
    payment_intent_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    sample: Optional[SampleRequest] = Relationship(back_populates="history")


class PaymentCustomer(TimestampMixin, SQLModel, table=True):
    """
    Maps a brand to its processor-side customer record. One per brand.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    brand_id: uuid.UUID = Field(
        foreign_key="brand.id",
        unique=True,
        description="The brand this customer belongs to. Unique: the lookup-or-create key."
    )
    processor_customer_id: str = Field(description="Example: 'cus_P2x...'")


class SamplePayment(TimestampMixin, SQLModel, table=True):
    """
    A local payment record. Only ever written together with its processor intent id.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    sample_id: uuid.UUID = Field(foreign_key="samplerequest.id", index=True)
    customer_id: uuid.UUID = Field(foreign_key="paymentcustomer.id")
    amount: float = Field(description="Invoice amount in major units. Example: 250.0")
    currency: str = Field(default="usd")
    due_date: Optional[date] = Field(default=None)
    payment_type: PaymentType = Field(default=PaymentType.DEPOSIT)
    processor_intent_id: str = Field(unique=True, index=True)
    client_secret: Optional[str] = Field(default=None)
    status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    paid_at: Optional[datetime] = Field(default=None)


class Notification(SQLModel, table=True):
    """
    An in-app notification record shown in the recipient's inbox.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(index=True)
    title: str
    message: str
    type: NotificationType = Field(default=NotificationType.SAMPLE_STATUS)
    details: Dict[str, Any] = Field(
        default_factory=dict,
        sa_type=JSON,
        description="Context for deep links. Example: {'sample_id': '...'}"
    )
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PushToken(TimestampMixin, SQLModel, table=True):
    """
    A device token registered by a user for push delivery.
    """
    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_push_token_user"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(index=True)
    token: str
    platform: Optional[str] = Field(default=None, description="Example: 'ios'")


class Order(TimestampMixin, SQLModel, table=True):
    """
    A bulk order promoted from an approved sample.
    sample_id is unique: a sample can be promoted at most once.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    sample_id: uuid.UUID = Field(
        foreign_key="samplerequest.id",
        unique=True,
        description="The originating sample request."
    )
    brand_id: uuid.UUID = Field(foreign_key="brand.id", index=True)
    factory_id: uuid.UUID = Field(foreign_key="factory.id", index=True)
    rep_id: Optional[uuid.UUID] = Field(default=None, foreign_key="rep.id", index=True)
    quantity: int = Field(description="Units ordered. Example: 100")
    status: OrderStatus = Field(default=OrderStatus.PENDING)
