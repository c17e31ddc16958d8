"""
Chapter access gate and video progress reporting.
"""
from datetime import datetime, timezone
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from academy.database import get_db
from academy.auth.dependencies import get_current_user
from academy.models.course import Chapter
from academy.models.user import User
from academy.schemas.progress import ProgressResponse, ProgressReport, ProgressComplete
from academy.schemas.subscriptions import ChapterAccessResponse
from academy.services import progress as progress_service
from academy.services import subscriptions as subscription_service

router = APIRouter(tags=["learning"])


def _get_chapter(db: Session, chapter_id: int) -> Chapter:
    chapter = db.query(Chapter).filter(Chapter.id == chapter_id).first()
    if not chapter:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return chapter


def _chapter_access(db: Session, user: User, chapter: Chapter) -> ChapterAccessResponse:
    now = datetime.now(timezone.utc)
    subscriptions = subscription_service.get_subscription_map(db, user.id)
    return ChapterAccessResponse(
        chapter_id=chapter.id,
        course_id=chapter.course_id,
        chapter_order=chapter.sort_order,
        has_access=subscription_service.has_access(user, chapter.course_id, chapter.sort_order, subscriptions, now),
        status=subscription_service.resolve_for_user(user, chapter.course_id, subscriptions, now),
    )


@router.get("/chapters/{chapter_id}/access", response_model=ChapterAccessResponse)
def get_chapter_access(
    chapter_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _chapter_access(db, current_user, _get_chapter(db, chapter_id))


@router.post("/chapters/{chapter_id}/progress", response_model=ProgressResponse)
def open_chapter_progress(
    chapter_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get or create the caller's progress record for a chapter they can watch"""
    chapter = _get_chapter(db, chapter_id)
    if not _chapter_access(db, current_user, chapter).has_access:
        raise HTTPException(status_code=403, detail="No active subscription for this course")
    return progress_service.initialize_progress(db, current_user, chapter)


@router.put("/progress/{progress_id}", response_model=ProgressResponse)
def report_progress(
    progress_id: int,
    body: ProgressReport,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return progress_service.report_progress(
        db, progress_id, body.watched_duration, body.total_duration, user_id=current_user.id
    )


@router.post("/progress/{progress_id}/complete", response_model=ProgressResponse)
def complete_progress(
    progress_id: int,
    body: ProgressComplete,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return progress_service.mark_complete(db, progress_id, body.total_duration, user_id=current_user.id)


@router.get("/progress", response_model=List[ProgressResponse])
def list_progress(
    course_id: int = Query(..., description="Course to list chapter progress for"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return progress_service.list_course_progress(db, current_user.id, course_id)
