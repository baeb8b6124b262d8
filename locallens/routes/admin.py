from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import lifecycle, queries
from ..database import get_db
from ..deps import require_admin
from ..models.report import (
    AdminCommentOut,
    AssignRequest,
    Category,
    CommentRequest,
    CommentResponse,
    DashboardResponse,
    Priority,
    ReportListResponse,
    ReportResponse,
    ReportStatus,
    SortField,
    SortOrder,
    StatusUpdateRequest,
    StatusUpdateResponse,
    Timeframe,
    report_to_out,
)
from ..models.user import User, UserListResponse, UserPagination, UserPublic, UserRef, UserRole
from ..policy import area_filter
from .reports import page_to_pagination

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/reports", response_model=ReportListResponse)
def list_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=queries.ADMIN_MAX_PAGE_SIZE),
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    category: Optional[Category] = None,
    priority: Optional[Priority] = None,
    city: Optional[str] = None,
    assigned_to: Optional[int] = Query(None, alias="assignedTo"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    sort_by: SortField = Query(SortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    search: Optional[str] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """All reports, public or not, scoped to the admin's area when one is set."""
    filters = queries.ReportFilters(
        status=status_filter,
        category=category,
        priority=priority,
        city=city,
        assigned_to=assigned_to,
        date_from=date_from,
        date_to=date_to,
        search=search,
        area=area_filter(admin),
    )
    result = queries.list_reports(db, filters, page, limit, sort_by, sort_order)
    return ReportListResponse(
        message="Admin reports retrieved successfully",
        reports=[report_to_out(r, admin.user_id) for r in result.items],
        pagination=page_to_pagination(result),
    )


@router.put("/reports/{report_id}/status", response_model=StatusUpdateResponse)
def update_status(
    report_id: int,
    payload: StatusUpdateRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    report, changed = lifecycle.transition_status(
        db,
        admin,
        report_id,
        payload.status,
        comment=payload.comment,
        estimated_resolution_time=payload.estimated_resolution_time,
    )
    return StatusUpdateResponse(
        message="Report status updated successfully",
        report=report_to_out(report, admin.user_id),
        status_changed=changed,
    )


@router.put("/reports/{report_id}/assign", response_model=ReportResponse)
def assign_report(
    report_id: int,
    payload: AssignRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    report = lifecycle.assign_report(db, admin, report_id, payload.assigned_to, payload.comment)
    return ReportResponse(message="Report assigned successfully", report=report_to_out(report, admin.user_id))


@router.post("/reports/{report_id}/comment", response_model=CommentResponse)
def add_comment(
    report_id: int,
    payload: CommentRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    comment = lifecycle.add_comment(db, admin, report_id, payload.comment)
    return CommentResponse(
        message="Comment added successfully",
        comment=AdminCommentOut(
            id=comment.id,
            comment=comment.comment,
            commented_by=UserRef.model_validate(comment.commented_by),
            commented_at=comment.commented_at,
        ),
    )


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    timeframe: str = Timeframe.MONTH.value,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Aggregate statistics; unknown timeframes fall back to 30 days."""
    try:
        window = Timeframe(timeframe)
    except ValueError:
        window = Timeframe.MONTH
    return DashboardResponse(
        message="Dashboard data retrieved successfully",
        dashboard=queries.dashboard(db, area_filter(admin), window),
    )


@router.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = queries.list_users(db, role, search, page, limit, sort_by, sort_order)
    return UserListResponse(
        message="Users retrieved successfully",
        users=[UserPublic.model_validate(u) for u in result.items],
        pagination=UserPagination(
            current_page=result.page,
            total_pages=result.total_pages,
            total_users=result.total,
            has_next_page=result.has_next,
            has_prev_page=result.has_prev,
        ),
    )
