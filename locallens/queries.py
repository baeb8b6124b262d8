"""Read side: filtered/paginated listings and dashboard aggregates."""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from .database import as_naive_utc, utcnow
from .models.models import Report, Upvote
from .models.report import (
    PRIORITY_RANK,
    TIMEFRAME_DAYS,
    ActivityItem,
    Category,
    CategoryStat,
    Dashboard,
    Overview,
    Priority,
    PriorityStat,
    ReportStatus,
    SortField,
    SortOrder,
    StatusCounts,
    StatusHistoryOut,
    Timeframe,
    TopReporter,
    TrendPoint,
)
from .models.user import User, UserRef, UserRole

PUBLIC_MAX_PAGE_SIZE = 50
ADMIN_MAX_PAGE_SIZE = 100
TOP_REPORTERS_LIMIT = 5
RECENT_ACTIVITY_LIMIT = 10
ALL_AREAS = "All Areas"


@dataclass
class ReportFilters:
    status: Optional[ReportStatus] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    city: Optional[str] = None
    assigned_to: Optional[int] = None
    reported_by: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None
    public_only: bool = False
    # Administrative area of the caller; takes the place of any city filter
    area: Optional[str] = None


@dataclass
class Page:
    items: List = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def _contains(column, text: str):
    """Case-insensitive substring match with LIKE wildcards escaped."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return column.ilike(f"%{escaped}%", escape="\\")


def _conditions(filters: ReportFilters) -> list:
    conds = []
    if filters.public_only:
        conds.append(Report.is_public.is_(True))
    if filters.status is not None:
        conds.append(Report.status == ReportStatus(filters.status).value)
    if filters.category is not None:
        conds.append(Report.category == Category(filters.category).value)
    if filters.priority is not None:
        conds.append(Report.priority == Priority(filters.priority).value)
    # An administrative area overrides any requested city
    city = filters.area or filters.city
    if city:
        conds.append(_contains(Report.city, city))
    if filters.assigned_to is not None:
        conds.append(Report.assigned_to_id == filters.assigned_to)
    if filters.reported_by is not None:
        conds.append(Report.reported_by_id == filters.reported_by)
    if filters.date_from is not None:
        conds.append(Report.created_at >= as_naive_utc(filters.date_from))
    if filters.date_to is not None:
        conds.append(Report.created_at <= as_naive_utc(filters.date_to))
    if filters.search:
        conds.append(
            or_(
                _contains(Report.title, filters.search),
                _contains(Report.description, filters.search),
                _contains(Report.address, filters.search),
            )
        )
    return conds


def _sort_key(sort_by: SortField):
    if sort_by == SortField.UPDATED_AT:
        return Report.updated_at
    if sort_by == SortField.PRIORITY:
        return case(PRIORITY_RANK, value=Report.priority, else_=0)
    if sort_by == SortField.UPVOTE_COUNT:
        return (
            select(func.count(Upvote.id))
            .where(Upvote.report_id == Report.id)
            .correlate(Report)
            .scalar_subquery()
        )
    return Report.created_at


def list_reports(
    db: Session,
    filters: ReportFilters,
    page: int = 1,
    limit: int = 10,
    sort_by: SortField = SortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
) -> Page:
    """One page of reports; the id tie-breaker keeps consecutive pages disjoint."""
    conds = _conditions(filters)

    key = _sort_key(SortField(sort_by))
    if SortOrder(sort_order) == SortOrder.DESC:
        ordering = [key.desc(), Report.id.desc()]
    else:
        ordering = [key.asc(), Report.id.asc()]

    total = db.query(func.count(Report.id)).filter(*conds).scalar() or 0
    items = (
        db.query(Report)
        .filter(*conds)
        .order_by(*ordering)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)


def status_counts(db: Session, filters: ReportFilters) -> StatusCounts:
    rows = (
        db.query(Report.status, func.count(Report.id))
        .filter(*_conditions(filters))
        .group_by(Report.status)
        .all()
    )
    counts = {status: n for status, n in rows}
    return StatusCounts(
        total=sum(counts.values()),
        pending=counts.get(ReportStatus.PENDING.value, 0),
        in_progress=counts.get(ReportStatus.IN_PROGRESS.value, 0),
        resolved=counts.get(ReportStatus.RESOLVED.value, 0),
        rejected=counts.get(ReportStatus.REJECTED.value, 0),
    )


# -------------------------------------------------------
# Dashboard
# -------------------------------------------------------
def _count_where(condition):
    return func.sum(case((condition, 1), else_=0))


def _day_label(value) -> str:
    # SQLite returns 'YYYY-MM-DD' strings, other backends return date objects
    return value if isinstance(value, str) else value.isoformat()


def lookback_start(timeframe: Timeframe, now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return now - timedelta(days=TIMEFRAME_DAYS[Timeframe(timeframe)])


def category_breakdown(db: Session, conds: list) -> List[CategoryStat]:
    count = func.count(Report.id)
    rows = (
        db.query(
            Report.category,
            count,
            _count_where(Report.status == ReportStatus.PENDING.value),
            _count_where(Report.status == ReportStatus.RESOLVED.value),
        )
        .filter(*conds)
        .group_by(Report.category)
        .order_by(count.desc(), Report.category)
        .all()
    )
    return [
        CategoryStat(category=cat, count=n, pending=int(pending or 0), resolved=int(resolved or 0))
        for cat, n, pending, resolved in rows
    ]


def priority_distribution(db: Session, conds: list) -> List[PriorityStat]:
    rows = db.query(Report.priority, func.count(Report.id)).filter(*conds).group_by(Report.priority).all()
    rows.sort(key=lambda row: PRIORITY_RANK.get(row[0], 0))
    return [PriorityStat(priority=p, count=n) for p, n in rows]


def daily_trend(db: Session, conds: list, since: datetime) -> List[TrendPoint]:
    day = func.date(Report.created_at)
    rows = (
        db.query(day, func.count(Report.id), _count_where(Report.status == ReportStatus.RESOLVED.value))
        .filter(*conds, Report.created_at >= since)
        .group_by(day)
        .order_by(day)
        .all()
    )
    return [TrendPoint(date=_day_label(d), count=n, resolved=int(resolved or 0)) for d, n, resolved in rows]


def recent_activity(db: Session, conds: list) -> List[ActivityItem]:
    reports = (
        db.query(Report)
        .filter(*conds)
        .order_by(Report.updated_at.desc(), Report.id.desc())
        .limit(RECENT_ACTIVITY_LIMIT)
        .all()
    )
    items = []
    for report in reports:
        last = report.status_history[-1] if report.status_history else None
        items.append(
            ActivityItem(
                id=report.id,
                title=report.title,
                status=report.status,
                city=report.city,
                updated_at=report.updated_at,
                reported_by=UserRef.model_validate(report.reporter) if report.reporter else None,
                assigned_to=UserRef.model_validate(report.assignee) if report.assignee else None,
                last_change=StatusHistoryOut(
                    status=last.status,
                    changed_by=UserRef.model_validate(last.changed_by) if last.changed_by else None,
                    changed_at=last.changed_at,
                    comment=last.comment,
                )
                if last is not None
                else None,
            )
        )
    return items


def top_reporters(db: Session, conds: list, limit: int = TOP_REPORTERS_LIMIT) -> List[TopReporter]:
    count = func.count(Report.id)
    rows = (
        db.query(
            User.user_id,
            User.name,
            User.email,
            count,
            _count_where(Report.status == ReportStatus.RESOLVED.value),
        )
        .join(Report, Report.reported_by_id == User.user_id)
        .filter(*conds)
        .group_by(User.user_id, User.name, User.email)
        .order_by(count.desc(), User.user_id)
        .limit(limit)
        .all()
    )
    return [
        TopReporter(id=uid, name=name, email=email, report_count=n, resolved_count=int(resolved or 0))
        for uid, name, email, n, resolved in rows
    ]


def average_resolution_days(db: Session, conds: list) -> float:
    rows = (
        db.query(Report.created_at, Report.resolved_at)
        .filter(*conds, Report.status == ReportStatus.RESOLVED.value, Report.resolved_at.isnot(None))
        .all()
    )
    if not rows:
        return 0.0
    total_days = sum((resolved - created).total_seconds() / 86400 for created, resolved in rows)
    return total_days / len(rows)


def dashboard(db: Session, area: Optional[str], timeframe: Timeframe = Timeframe.MONTH) -> Dashboard:
    conds = _conditions(ReportFilters(area=area))
    counts = status_counts(db, ReportFilters(area=area))

    return Dashboard(
        overview=Overview(
            total_reports=counts.total,
            pending_reports=counts.pending,
            in_progress_reports=counts.in_progress,
            resolved_reports=counts.resolved,
            rejected_reports=counts.rejected,
        ),
        category_breakdown=category_breakdown(db, conds),
        priority_distribution=priority_distribution(db, conds),
        recent_trend=daily_trend(db, conds, lookback_start(timeframe)),
        recent_activity=recent_activity(db, conds),
        top_reporters=top_reporters(db, conds),
        average_resolution_time=average_resolution_days(db, conds),
        timeframe=timeframe,
        admin_area=area or ALL_AREAS,
    )


# -------------------------------------------------------
# Users
# -------------------------------------------------------
USER_SORT_COLUMNS: Dict[str, object] = {
    "createdAt": User.created_at,
    "name": User.name,
    "email": User.email,
    "lastLogin": User.last_login,
}


def list_users(
    db: Session,
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "createdAt",
    sort_order: SortOrder = SortOrder.DESC,
) -> Page:
    conds = []
    if role is not None:
        conds.append(User.role == UserRole(role).value)
    if search:
        conds.append(or_(_contains(User.name, search), _contains(User.email, search)))

    column = USER_SORT_COLUMNS.get(sort_by, User.created_at)
    if SortOrder(sort_order) == SortOrder.DESC:
        ordering = [column.desc(), User.user_id.desc()]
    else:
        ordering = [column.asc(), User.user_id.asc()]

    total = db.query(func.count(User.user_id)).filter(*conds).scalar() or 0
    items = db.query(User).filter(*conds).order_by(*ordering).offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, total=total, page=page, limit=limit)
