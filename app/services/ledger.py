import uuid
from datetime import date, datetime
from typing import Any, List, Optional

from loguru import logger
from sqlalchemy import func
from sqlmodel import Session, select

from app.core.exceptions import InvalidFormat, NotFound
from app.db.schema import SampleRequest, SampleStatus, SampleStatusHistory
from app.domain.lifecycle import PIPELINE
from app.models.status_history import (
    StatusHistoryRead, TimelineRead, TimelineStage, TransitionFields
)

REVIEW_STAGES = (SampleStatus.IN_REVIEW, SampleStatus.APPROVED, SampleStatus.REJECTED)


def normalize_eta(value: Any) -> Optional[date]:
    """
    Reduces an ETA to a calendar date.
    Accepts date, datetime, 'YYYY-MM-DD' or an ISO-8601 datetime string.
    Anything else is rejected rather than truncated.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidFormat(f"ETA must be a date, got {type(value).__name__}.")

    raw = value.strip()
    if not raw:
        return None

    try:
        if len(raw) == 10:
            return date.fromisoformat(raw)
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        raise InvalidFormat(f"ETA must be in YYYY-MM-DD format, got '{value}'.")


class StatusLedger:
    """
    Append-only status history for sample requests.
    """

    def __init__(self, session: Session):
        self.session = session

    def _get_sample(self, sample_id: uuid.UUID) -> SampleRequest:
        sample = self.session.get(SampleRequest, sample_id)
        if not sample:
            raise NotFound("Sample request", sample_id)
        return sample

    def _next_sequence(self, sample_id: uuid.UUID) -> int:
        current = self.session.exec(
            select(func.max(SampleStatusHistory.sequence))
            .where(SampleStatusHistory.sample_id == sample_id)
        ).one()
        return (current or 0) + 1

    def append(
        self,
        sample_id: uuid.UUID,
        status: SampleStatus,
        fields: Optional[TransitionFields] = None,
        commit: bool = True,
    ) -> SampleStatusHistory:
        """
        Writes one immutable entry at the next sequence position.
        With commit=False the entry is only flushed, so the caller can make it
        part of a larger unit of work.
        """
        fields = fields or TransitionFields()
        self._get_sample(sample_id)

        entry = SampleStatusHistory(
            sample_id=sample_id,
            sequence=self._next_sequence(sample_id),
            status=status,
            notes=fields.notes,
            eta=normalize_eta(fields.eta),
            tracking_number=fields.tracking_number,
            payment_intent_id=fields.payment_intent_id,
        )
        self.session.add(entry)

        if commit:
            self.session.commit()
            self.session.refresh(entry)
        else:
            self.session.flush()

        logger.debug(
            f"Ledger append: sample={sample_id} seq={entry.sequence} status={status.value}")
        return entry

    def entries(self, sample_id: uuid.UUID) -> List[SampleStatusHistory]:
        """Physical entries only, oldest first."""
        return list(self.session.exec(
            select(SampleStatusHistory)
            .where(SampleStatusHistory.sample_id == sample_id)
            .order_by(SampleStatusHistory.sequence, SampleStatusHistory.created_at)
        ).all())

    def list(self, sample_id: uuid.UUID) -> List[StatusHistoryRead]:
        """
        Full history, oldest first. When no explicit 'requested' entry was
        written, one is synthesised from the sample's own creation fields.
        """
        sample = self._get_sample(sample_id)
        rows = [StatusHistoryRead.model_validate(e, from_attributes=True)
                for e in self.entries(sample_id)]

        if not any(r.status == SampleStatus.REQUESTED for r in rows):
            rows.insert(0, StatusHistoryRead(
                sample_id=sample.id,
                sequence=0,
                status=SampleStatus.REQUESTED,
                notes=sample.comments,
                created_at=sample.created_at,
                synthetic=True,
            ))
        return rows

    def current_status(self, sample_id: uuid.UUID) -> SampleStatus:
        return self.list(sample_id)[-1].status

    def timeline(self, sample_id: uuid.UUID) -> TimelineRead:
        history = self.list(sample_id)

        latest = {}
        for entry in history:
            latest[entry.status] = entry

        def _stages(statuses):
            return [
                TimelineStage(status=s, completed=s in latest, entry=latest.get(s))
                for s in statuses
            ]

        review = [s for s in REVIEW_STAGES if s in latest]

        return TimelineRead(
            sample_id=sample_id,
            current_status=history[-1].status,
            has_updates=not (len(history) == 1
                             and history[0].status == SampleStatus.REQUESTED),
            stages=_stages(PIPELINE),
            review=_stages(review) if review else [],
        )
