from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String, Text, UniqueConstraint

from src.api.database import Base


class ProjectModel(Base):
    """Portfolio project record"""

    __tablename__ = "projects"

    id = Column(String(128), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    repo_url = Column(String(512), default="")
    website_url = Column(String(512), default="")
    type = Column(String(64), default="project")
    tags = Column(Text, default="")  # comma-delimited
    status = Column(String(64), default="active")
    featured = Column(Boolean, default=False)
    image = Column(String(512), default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, index=True)


class PageViewDaily(Base):
    """Per-day, per-page view counters"""

    __tablename__ = "page_view_daily"

    id = Column(Integer, primary_key=True, autoincrement=True)
    day = Column(Date, nullable=False)
    page = Column(String(200), nullable=False)
    views = Column(Integer, nullable=False, default=0)
    uniques = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("day", "page", name="uq_page_view_daily_day_page"),
        Index("idx_page_view_daily_day", "day"),
    )


class PageViewVisitor(Base):
    """One row per (day, page, visitor); its constraint decides uniqueness"""

    __tablename__ = "page_view_visitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    day = Column(Date, nullable=False)
    page = Column(String(200), nullable=False)
    visitor_id = Column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("day", "page", "visitor_id", name="uq_page_view_visitor"),
    )
