"""
Rep assignment policy for new sample requests.
"""
import uuid
from typing import Optional, Sequence

from app.core.exceptions import AssignmentError
from app.db.schema import Factory, Rep


def resolve_rep(identifier: Optional[uuid.UUID], reps: Sequence[Rep]) -> Optional[Rep]:
    """
    Finds the rep behind an identifier that may be a rep id or a rep's user id.
    A rep id match wins over a user id match.
    """
    if identifier is None:
        return None

    by_id = next((r for r in reps if r.id == identifier), None)
    if by_id:
        return by_id
    return next((r for r in reps if r.user_id == identifier), None)


def assign_rep(factory: Factory, reps: Sequence[Rep], rotation: int = 0) -> uuid.UUID:
    """
    Picks the rep for a new sample request.

    1. The factory's own rep, if it resolves to an active rep.
    2. Otherwise round-robin over active reps, ordered by (created_at, id),
       using `rotation` as the cursor.

    Always returns a rep id. Raises AssignmentError when no active rep exists.
    """
    active = sorted((r for r in reps if r.active),
                    key=lambda r: (r.created_at, str(r.id)))

    current = resolve_rep(factory.rep_id, reps)
    if current and current.active:
        return current.id

    if not active:
        raise AssignmentError(
            f"No active rep available for factory '{factory.id}'.")

    return active[rotation % len(active)].id
