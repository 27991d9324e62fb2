"""
Page-view analytics.

Views are counted per (UTC day, page). Unique visitors are approximate: the
visitor id comes from a client cookie and is not verified.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from src.api.exceptions import StorageError
from src.api.models import PageViewDaily, PageViewVisitor

logger = logging.getLogger(__name__)

MAX_PAGE_LENGTH = 200
VISITOR_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def normalize_page(page: Optional[str]) -> str:
    """Drop query and fragment, force a leading slash, cap the length."""
    page = (page or "/").strip()
    page = page.split("#", 1)[0].split("?", 1)[0]
    if not page.startswith("/"):
        page = "/" + page
    return page[:MAX_PAGE_LENGTH]


def is_valid_visitor_id(value: Optional[str]) -> bool:
    return bool(value) and VISITOR_ID_PATTERN.match(value) is not None


class DayStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    day: date
    views: int = 0
    uniques: int = 0


class PageStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: str
    views: int


class MetricsSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    days: List[DayStats]
    total_views: int
    total_uniques: int
    top_pages: List[PageStats]


def window(days: int, today: date) -> List[date]:
    """The last ``days`` calendar days ending at ``today``, oldest first."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def build_summary(
    day_list: List[date],
    per_day: Dict[date, Tuple[int, int]],
    page_views: Dict[str, int],
    top: int,
) -> MetricsSummary:
    days = [
        DayStats(day=d, views=per_day.get(d, (0, 0))[0], uniques=per_day.get(d, (0, 0))[1])
        for d in day_list
    ]
    ranked = sorted(page_views.items(), key=lambda item: (-item[1], item[0]))[:top]
    return MetricsSummary(
        days=days,
        total_views=sum(d.views for d in days),
        total_uniques=sum(d.uniques for d in days),
        top_pages=[PageStats(page=page, views=views) for page, views in ranked],
    )


class MetricsStore(ABC):
    @abstractmethod
    def record_view(self, day: date, page: str, visitor_id: str) -> bool:
        """Count one view. Returns True when the visitor is new for (day, page)."""

    @abstractmethod
    def summary(self, days: int, top: int, today: Optional[date] = None) -> MetricsSummary:
        """Zero-filled per-day totals plus the ``top`` pages. Never raises on read errors."""


class MemoryMetricsStore(MetricsStore):
    """Counters for the no-database configuration; lost on restart."""

    def __init__(self) -> None:
        self._views: Counter = Counter()
        self._uniques: Counter = Counter()
        self._seen: Set[Tuple[date, str, str]] = set()

    def record_view(self, day: date, page: str, visitor_id: str) -> bool:
        self._views[(day, page)] += 1
        key = (day, page, visitor_id)
        if key in self._seen:
            return False
        self._seen.add(key)
        self._uniques[(day, page)] += 1
        return True

    def summary(self, days: int, top: int, today: Optional[date] = None) -> MetricsSummary:
        day_list = window(days, today or utc_today())
        wanted = set(day_list)
        per_day: Dict[date, Tuple[int, int]] = {}
        page_views: Counter = Counter()
        for (day, page), views in self._views.items():
            if day not in wanted:
                continue
            prev_views, prev_uniques = per_day.get(day, (0, 0))
            per_day[day] = (prev_views + views, prev_uniques + self._uniques[(day, page)])
            page_views[page] += views
        return build_summary(day_list, per_day, page_views, top)


def _dialect_insert(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise StorageError(detail=f"Unsupported database dialect for metrics: {dialect_name}")
    return insert


class SqlMetricsStore(MetricsStore):
    """
    Counters in ``page_view_daily`` with one ``page_view_visitors`` row per
    distinct visitor. Both writes are single upserts, so concurrent beacons
    rely on the unique constraints rather than on locking.
    """

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def record_view(self, day: date, page: str, visitor_id: str) -> bool:
        with self.session_factory() as db:
            insert = _dialect_insert(db.get_bind().dialect.name)
            try:
                seen = db.execute(
                    insert(PageViewVisitor)
                    .values(day=day, page=page, visitor_id=visitor_id)
                    .on_conflict_do_nothing(index_elements=["day", "page", "visitor_id"])
                )
                is_new = seen.rowcount == 1
                bump = 1 if is_new else 0
                stmt = insert(PageViewDaily).values(day=day, page=page, views=1, uniques=bump)
                db.execute(
                    stmt.on_conflict_do_update(
                        index_elements=["day", "page"],
                        set_={
                            "views": PageViewDaily.views + 1,
                            "uniques": PageViewDaily.uniques + bump,
                        },
                    )
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to record page view for {page}: {e}")
                raise StorageError(detail=str(e)) from e
        return is_new

    def summary(self, days: int, top: int, today: Optional[date] = None) -> MetricsSummary:
        day_list = window(days, today or utc_today())
        start, end = day_list[0], day_list[-1]
        try:
            with self.session_factory() as db:
                day_rows = (
                    db.query(
                        PageViewDaily.day,
                        func.sum(PageViewDaily.views),
                        func.sum(PageViewDaily.uniques),
                    )
                    .filter(PageViewDaily.day >= start, PageViewDaily.day <= end)
                    .group_by(PageViewDaily.day)
                    .all()
                )
                page_rows = (
                    db.query(PageViewDaily.page, func.sum(PageViewDaily.views).label("total"))
                    .filter(PageViewDaily.day >= start, PageViewDaily.day <= end)
                    .group_by(PageViewDaily.page)
                    .order_by(func.sum(PageViewDaily.views).desc(), PageViewDaily.page)
                    .limit(top)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.warning(f"Metrics summary unavailable, reporting zeros: {e}")
            return build_summary(day_list, {}, {}, top)

        per_day = {row[0]: (int(row[1] or 0), int(row[2] or 0)) for row in day_rows}
        page_views = {row[0]: int(row[1] or 0) for row in page_rows}
        return build_summary(day_list, per_day, page_views, top)
