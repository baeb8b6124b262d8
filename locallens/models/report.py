from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from ..database import utcnow
from .user import CamelModel, Pagination, UserRef


# -------- Enums --------
class ReportStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Category(str, Enum):
    ROAD = "road"
    WATER = "water"
    ELECTRICITY = "electricity"
    CLEANLINESS = "cleanliness"
    STREETLIGHT = "streetlight"
    DRAINAGE = "drainage"
    TRAFFIC = "traffic"
    NOISE = "noise"
    CONSTRUCTION = "construction"
    SAFETY = "safety"
    OTHER = "other"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK = {Priority.LOW.value: 1, Priority.MEDIUM.value: 2, Priority.HIGH.value: 3, Priority.URGENT.value: 4}


class SortField(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    PRIORITY = "priority"
    UPVOTE_COUNT = "upvoteCount"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Timeframe(str, Enum):
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"


TIMEFRAME_DAYS = {Timeframe.WEEK: 7, Timeframe.MONTH: 30, Timeframe.QUARTER: 90, Timeframe.YEAR: 365}


# -------- Requests --------
class Coordinates(CamelModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Location(CamelModel):
    address: str = Field(..., min_length=1, max_length=255)
    coordinates: Coordinates
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = None
    zip_code: Optional[str] = None


class ImageRef(CamelModel):
    url: str = Field(..., min_length=1)
    public_id: Optional[str] = None
    caption: Optional[str] = None


class ReportCreate(CamelModel):
    title: str = Field(..., min_length=5, max_length=100)
    description: str = Field(..., min_length=20, max_length=1000)
    category: Category
    location: Location
    images: List[ImageRef] = []
    priority: Priority = Priority.MEDIUM
    tags: List[str] = []
    is_public: bool = True


class ReportUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=5, max_length=100)
    description: Optional[str] = Field(None, min_length=20, max_length=1000)
    category: Optional[Category] = None
    location: Optional[Location] = None
    images: Optional[List[ImageRef]] = None
    priority: Optional[Priority] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None


class StatusUpdateRequest(CamelModel):
    status: ReportStatus
    comment: Optional[str] = Field(None, max_length=500)
    estimated_resolution_time: Optional[datetime] = None


class AssignRequest(CamelModel):
    assigned_to: int
    comment: Optional[str] = Field(None, max_length=500)


class CommentRequest(CamelModel):
    comment: str = Field(..., min_length=1, max_length=500)


# -------- Responses --------
class StatusHistoryOut(CamelModel):
    status: ReportStatus
    changed_by: Optional[UserRef] = None
    changed_at: datetime
    comment: Optional[str] = None


class AdminCommentOut(CamelModel):
    id: int
    comment: str
    commented_by: UserRef
    commented_at: datetime


class UpvoteOut(CamelModel):
    user: int
    voted_at: datetime


class ReportOut(CamelModel):
    id: int
    title: str
    description: str
    category: Category
    status: ReportStatus
    priority: Priority
    location: Location
    images: List[ImageRef] = []
    tags: List[str] = []
    reported_by: UserRef
    assigned_to: Optional[UserRef] = None
    status_history: List[StatusHistoryOut] = []
    admin_comments: List[AdminCommentOut] = []
    upvotes: List[UpvoteOut] = []
    upvote_count: int = 0
    has_user_upvoted: bool = False
    is_public: bool = True
    resolved_at: Optional[datetime] = None
    estimated_resolution_time: Optional[datetime] = None
    days_since_reported: int = 0
    created_at: datetime
    updated_at: datetime


def _user_ref(user) -> Optional[UserRef]:
    return UserRef.model_validate(user) if user is not None else None


def report_to_out(report, viewer_id: Optional[int] = None) -> ReportOut:
    """Build the wire representation of a report for a given viewer."""
    return ReportOut(
        id=report.id,
        title=report.title,
        description=report.description,
        category=report.category,
        status=report.status,
        priority=report.priority,
        location=Location(
            address=report.address,
            coordinates=Coordinates(lat=report.latitude, lng=report.longitude),
            city=report.city,
            state=report.state,
            zip_code=report.zip_code,
        ),
        images=[ImageRef.model_validate(img) for img in (report.images or [])],
        tags=list(report.tags or []),
        reported_by=_user_ref(report.reporter),
        assigned_to=_user_ref(report.assignee),
        status_history=[
            StatusHistoryOut(
                status=entry.status,
                changed_by=_user_ref(entry.changed_by),
                changed_at=entry.changed_at,
                comment=entry.comment,
            )
            for entry in report.status_history
        ],
        admin_comments=[
            AdminCommentOut(
                id=c.id,
                comment=c.comment,
                commented_by=_user_ref(c.commented_by),
                commented_at=c.commented_at,
            )
            for c in report.admin_comments
        ],
        upvotes=[UpvoteOut(user=v.user_id, voted_at=v.voted_at) for v in report.upvotes],
        upvote_count=report.upvote_count,
        has_user_upvoted=report.has_upvote_from(viewer_id),
        is_public=report.is_public,
        resolved_at=report.resolved_at,
        estimated_resolution_time=report.estimated_resolution_time,
        days_since_reported=(utcnow() - report.created_at).days,
        created_at=report.created_at,
        updated_at=report.updated_at,
    )


class ReportPagination(Pagination):
    total_reports: int


class ReportResponse(CamelModel):
    message: str
    report: ReportOut


class ReportListResponse(CamelModel):
    message: str
    reports: List[ReportOut]
    pagination: ReportPagination


class StatusCounts(CamelModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0
    rejected: int = 0


class MyReportsResponse(ReportListResponse):
    statistics: StatusCounts


class StatusUpdateResponse(CamelModel):
    message: str
    report: ReportOut
    status_changed: bool


class UpvoteResponse(CamelModel):
    message: str
    upvoted: bool
    upvote_count: int


class CommentResponse(CamelModel):
    message: str
    comment: AdminCommentOut


# -------- Dashboard --------
class Overview(CamelModel):
    total_reports: int = 0
    pending_reports: int = 0
    in_progress_reports: int = 0
    resolved_reports: int = 0
    rejected_reports: int = 0


class CategoryStat(CamelModel):
    category: Category
    count: int
    pending: int
    resolved: int


class PriorityStat(CamelModel):
    priority: Priority
    count: int


class TrendPoint(CamelModel):
    date: str
    count: int
    resolved: int


class ActivityItem(CamelModel):
    id: int
    title: str
    status: ReportStatus
    city: str
    updated_at: datetime
    reported_by: Optional[UserRef] = None
    assigned_to: Optional[UserRef] = None
    last_change: Optional[StatusHistoryOut] = None


class TopReporter(CamelModel):
    id: int
    name: str
    email: str
    report_count: int
    resolved_count: int


class Dashboard(CamelModel):
    overview: Overview
    category_breakdown: List[CategoryStat]
    priority_distribution: List[PriorityStat]
    recent_trend: List[TrendPoint]
    recent_activity: List[ActivityItem]
    top_reporters: List[TopReporter]
    average_resolution_time: float
    timeframe: Timeframe
    admin_area: str


class DashboardResponse(CamelModel):
    message: str
    dashboard: Dashboard
