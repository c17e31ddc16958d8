from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from .base import Base


class Progress(Base):
    """
    Watch progress for one (user, chapter).

    watched_duration never decreases under concurrent reports and
    is_completed never reverts; see academy.services.progress.
    """
    __tablename__ = "progress"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    chapter_id = Column(Integer, ForeignKey("chapters.id"), nullable=False, index=True)

    is_completed = Column(Boolean, nullable=False, default=False)
    watched_duration = Column(Float, nullable=False, default=0)  # seconds
    total_duration = Column(Float, nullable=False, default=0)  # seconds
    watched_percent = Column(Integer, nullable=False, default=0)  # 0-100

    last_watched_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "chapter_id", name="uq_progress_user_chapter"),
    )
