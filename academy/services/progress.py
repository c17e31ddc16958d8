"""
Video watch progress, merged monotonically across concurrent writers.

The same student may report from several tabs or devices, and a periodic tick
can race a pause-triggered save. Every report is applied as a locked
read-modify-write that keeps the largest watched position seen so far, so a
stale writer can never erase progress. Completion is sticky.
"""
import logging
import math
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from academy.database import run_transaction
from academy.models.course import Chapter
from academy.models.progress import Progress
from academy.models.user import User
from academy.services import events
from academy.services.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def watched_percent(watched: float, total: float) -> int:
    """round(100 * watched / total), halves rounded up, capped at 100."""
    return min(100, int(math.floor(100 * watched / total + 0.5)))


def _get_locked_progress(db: Session, progress_id: int, user_id: Optional[int] = None) -> Progress:
    query = db.query(Progress).filter(Progress.id == progress_id)
    if user_id is not None:
        query = query.filter(Progress.user_id == user_id)
    progress = query.with_for_update().first()
    if progress is None:
        raise NotFound(f"Progress {progress_id} not found")
    return progress


def _find(db: Session, user_id: int, chapter_id: int) -> Optional[Progress]:
    return db.query(Progress).filter(
        Progress.user_id == user_id,
        Progress.chapter_id == chapter_id,
    ).first()


def initialize_progress(db: Session, user: User, chapter: Chapter) -> Progress:
    """Get-or-create the (user, chapter) record; an existing record is returned untouched."""
    existing = _find(db, user.id, chapter.id)
    if existing is not None:
        return existing

    def _create(session: Session) -> Progress:
        progress = Progress(
            user_id=user.id,
            course_id=chapter.course_id,
            chapter_id=chapter.id,
            is_completed=False,
            watched_duration=0,
            total_duration=0,
            watched_percent=0,
        )
        session.add(progress)
        session.flush()
        return progress

    try:
        progress = run_transaction(db, _create)
    except IntegrityError:
        # Another session created it first; theirs is the record
        existing = _find(db, user.id, chapter.id)
        if existing is None:
            raise
        return existing
    db.refresh(progress)
    logger.info("Progress %s initialized for user %s chapter %s", progress.id, user.id, chapter.id)
    return progress


def report_progress(
    db: Session,
    progress_id: int,
    watched_seconds: float,
    total_seconds: float,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Progress:
    """Merge one observed playback position into the stored record."""
    if watched_seconds is None or watched_seconds < 0 or total_seconds is None or total_seconds < 0:
        raise ValidationError("Watched and total durations must be non-negative")
    now = _now(now)

    def _report(session: Session) -> Progress:
        progress = _get_locked_progress(session, progress_id, user_id=user_id)
        new_watched = max(progress.watched_duration or 0, watched_seconds)

        progress.watched_duration = new_watched
        progress.total_duration = total_seconds
        if progress.is_completed:
            progress.watched_percent = 100
        elif total_seconds > 0:
            progress.watched_percent = watched_percent(new_watched, total_seconds)
        progress.last_watched_at = now
        progress.updated_at = now
        session.flush()
        return progress

    return run_transaction(db, _report)


def mark_complete(
    db: Session,
    progress_id: int,
    total_seconds: float,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Progress:
    """End of video: completion wins over any in-flight partial report."""
    if total_seconds is None or total_seconds < 0:
        raise ValidationError("Total duration must be non-negative")
    now = _now(now)

    def _complete(session: Session) -> Progress:
        progress = _get_locked_progress(session, progress_id, user_id=user_id)
        first_completion = not progress.is_completed

        progress.is_completed = True
        progress.watched_percent = 100
        progress.watched_duration = total_seconds
        progress.last_watched_at = now
        progress.updated_at = now
        session.flush()

        if first_completion:
            events.log_event(
                session, events.PROGRESS_COMPLETED, progress.user_id,
                {"course_id": progress.course_id, "chapter_id": progress.chapter_id},
                actor_id=progress.user_id,
            )
        return progress

    progress = run_transaction(db, _complete)
    logger.info("Progress %s completed (chapter %s)", progress.id, progress.chapter_id)
    return progress


def list_course_progress(db: Session, user_id: int, course_id: int) -> List[Progress]:
    return db.query(Progress).filter(
        Progress.user_id == user_id,
        Progress.course_id == course_id,
    ).all()
