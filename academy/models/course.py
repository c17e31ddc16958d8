from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class Course(Base):
    """Catalog entry. Only pricing and identity matter to the order flow."""
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    # Pricing per subscription length
    price_3_months = Column(Integer, nullable=True)
    price_6_months = Column(Integer, nullable=True)
    price_12_months = Column(Integer, nullable=True)

    textbook_name = Column(String(255), nullable=True)
    textbook_price = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    chapters = relationship("Chapter", back_populates="course", order_by="Chapter.sort_order")

    def price_for(self, months: int):
        """Course price for a subscription length, None when not sold for that length."""
        return {
            3: self.price_3_months,
            6: self.price_6_months,
            12: self.price_12_months,
        }.get(months)


class Chapter(Base):
    __tablename__ = "chapters"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    video_url = Column(String(1024), nullable=True)
    sort_order = Column(Integer, nullable=False)  # 1-based; chapter 1 is free
    duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    course = relationship("Course", back_populates="chapters")
