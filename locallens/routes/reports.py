from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from .. import lifecycle, queries
from ..database import get_db
from ..deps import get_current_user, get_optional_user
from ..models.report import (
    Category,
    MyReportsResponse,
    Priority,
    ReportCreate,
    ReportListResponse,
    ReportPagination,
    ReportResponse,
    ReportStatus,
    ReportUpdate,
    SortField,
    SortOrder,
    UpvoteResponse,
    report_to_out,
)
from ..models.user import MessageResponse, User

router = APIRouter(prefix="/api/reports", tags=["Reports"])


def page_to_pagination(page: queries.Page) -> ReportPagination:
    return ReportPagination(
        current_page=page.page,
        total_pages=page.total_pages,
        total_reports=page.total,
        has_next_page=page.has_next,
        has_prev_page=page.has_prev,
    )


def _viewer_id(user: Optional[User]) -> Optional[int]:
    return user.user_id if user is not None else None


# -------------------------------------------------------
# CREATE
# -------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED, response_model=ReportResponse)
def create_report(
    payload: ReportCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a new report owned by the caller."""
    metadata = {
        "userAgent": request.headers.get("user-agent"),
        "ipAddress": request.client.host if request.client else None,
    }
    report = lifecycle.create_report(db, current_user, payload, metadata)
    return ReportResponse(
        message="Report created successfully",
        report=report_to_out(report, current_user.user_id),
    )


# -------------------------------------------------------
# LIST (public)
# -------------------------------------------------------
@router.get("", response_model=ReportListResponse)
def list_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=queries.PUBLIC_MAX_PAGE_SIZE),
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    category: Optional[Category] = None,
    priority: Optional[Priority] = None,
    city: Optional[str] = Query(None, min_length=2),
    sort_by: SortField = Query(SortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    search: Optional[str] = None,
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Public reports only, whoever is asking."""
    filters = queries.ReportFilters(
        status=status_filter,
        category=category,
        priority=priority,
        city=city,
        search=search,
        public_only=True,
    )
    result = queries.list_reports(db, filters, page, limit, sort_by, sort_order)
    return ReportListResponse(
        message="Reports retrieved successfully",
        reports=[report_to_out(r, _viewer_id(viewer)) for r in result.items],
        pagination=page_to_pagination(result),
    )


@router.get("/my-reports", response_model=MyReportsResponse)
def my_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=queries.PUBLIC_MAX_PAGE_SIZE),
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters = queries.ReportFilters(status=status_filter, reported_by=current_user.user_id)
    result = queries.list_reports(db, filters, page, limit)
    statistics = queries.status_counts(db, queries.ReportFilters(reported_by=current_user.user_id))
    return MyReportsResponse(
        message="User reports retrieved successfully",
        reports=[report_to_out(r, current_user.user_id) for r in result.items],
        pagination=page_to_pagination(result),
        statistics=statistics,
    )


# -------------------------------------------------------
# SINGLE REPORT
# -------------------------------------------------------
@router.get("/{report_id}", response_model=ReportResponse)
def get_report(
    report_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    report = lifecycle.get_visible_report(db, viewer, report_id)
    return ReportResponse(message="Report retrieved successfully", report=report_to_out(report, _viewer_id(viewer)))


@router.put("/{report_id}", response_model=ReportResponse)
def update_report(
    report_id: int,
    patch: ReportUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Owner or administrator edits content fields."""
    report = lifecycle.update_report(db, current_user, report_id, patch)
    return ReportResponse(message="Report updated successfully", report=report_to_out(report, current_user.user_id))


@router.delete("/{report_id}", response_model=MessageResponse)
def delete_report(
    report_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    lifecycle.delete_report(db, current_user, report_id)
    return MessageResponse(message="Report deleted successfully")


@router.post("/{report_id}/upvote", response_model=UpvoteResponse)
def toggle_upvote(
    report_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    upvoted, count = lifecycle.toggle_upvote(db, current_user, report_id)
    return UpvoteResponse(
        message="Report upvoted" if upvoted else "Upvote removed",
        upvoted=upvoted,
        upvote_count=count,
    )
