"""Report lifecycle: creation, edits, status transitions, assignment,
comments, upvotes and deletion.

Every invariant on the report record is enforced here, in plain functions,
rather than in ORM event hooks:

* a new report starts ``pending`` with exactly one history entry;
* every status transition appends exactly one history entry;
* ``resolved_at`` is stamped on entering ``resolved``, kept on
  ``resolved -> resolved`` and cleared when the report leaves ``resolved``;
* a user holds at most one upvote per report.

Writes are single-session commits with last-write-wins semantics.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .database import as_naive_utc, utcnow
from .errors import Conflict, ReportNotFound, ValidationFailed
from .models.models import AdminComment, Report, StatusHistoryEntry, Upvote
from .models.report import Location, ReportCreate, ReportStatus, ReportUpdate
from .models.user import User
from .policy import ensure_can_manage, ensure_can_view, ensure_in_admin_area, is_administrator

logger = logging.getLogger(__name__)

ASSIGNMENT_STATUS_COMMENT = "Status updated due to assignment"


def get_report(db: Session, report_id: int) -> Report:
    report = db.query(Report).filter(Report.id == report_id).first()
    if report is None:
        raise ReportNotFound()
    return report


def get_visible_report(db: Session, viewer: Optional[User], report_id: int) -> Report:
    report = get_report(db, report_id)
    ensure_can_view(viewer, report)
    return report


def _apply_location(report: Report, location: Location) -> None:
    report.address = location.address
    report.city = location.city
    report.state = location.state
    report.zip_code = location.zip_code
    report.latitude = location.coordinates.lat
    report.longitude = location.coordinates.lng


def _append_history(report: Report, status: str, actor: Optional[User], comment: Optional[str] = None):
    entry = StatusHistoryEntry(
        status=status,
        changed_by=actor,
        changed_at=utcnow(),
        comment=comment,
    )
    report.status_history.append(entry)
    return entry


def _append_comment(report: Report, text: str, author: User) -> AdminComment:
    comment = AdminComment(comment=text, commented_by=author, commented_at=utcnow())
    report.admin_comments.append(comment)
    return comment


def _set_status(report: Report, new_status: str, actor: Optional[User], comment: Optional[str]) -> bool:
    """Move the report to new_status, recording the transition. Returns whether it changed."""
    old_status = report.status
    if new_status == ReportStatus.RESOLVED.value:
        if old_status != ReportStatus.RESOLVED.value or report.resolved_at is None:
            report.resolved_at = utcnow()
    else:
        report.resolved_at = None
    report.status = new_status
    _append_history(report, new_status, actor, comment)
    report.updated_at = utcnow()
    return old_status != new_status


# -------------------------------------------------------
# Create / Update / Delete
# -------------------------------------------------------
def create_report(db: Session, owner: User, payload: ReportCreate, metadata: Optional[dict] = None) -> Report:
    report = Report(
        title=payload.title,
        description=payload.description,
        category=payload.category.value,
        priority=payload.priority.value,
        status=ReportStatus.PENDING.value,
        images=[img.model_dump(by_alias=True) for img in payload.images],
        tags=list(payload.tags),
        is_public=payload.is_public,
        reporter=owner,
        client_metadata=metadata or {},
    )
    _apply_location(report, payload.location)
    _append_history(report, ReportStatus.PENDING.value, owner)

    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("Report %s created by user %s", report.id, owner.user_id)
    return report


def update_report(db: Session, actor: User, report_id: int, patch: ReportUpdate) -> Report:
    """Apply a content patch. Status and history are never touched here."""
    report = get_report(db, report_id)
    ensure_can_manage(actor, report)

    if patch.title is not None:
        report.title = patch.title
    if patch.description is not None:
        report.description = patch.description
    if patch.category is not None:
        report.category = patch.category.value
    if patch.location is not None:
        _apply_location(report, patch.location)
    if patch.images is not None:
        report.images = [img.model_dump(by_alias=True) for img in patch.images]
    if patch.priority is not None:
        report.priority = patch.priority.value
    if patch.tags is not None:
        report.tags = list(patch.tags)
    if patch.is_public is not None:
        report.is_public = patch.is_public

    report.updated_at = utcnow()
    db.commit()
    db.refresh(report)
    return report


def delete_report(db: Session, actor: User, report_id: int) -> None:
    report = get_report(db, report_id)
    ensure_can_manage(actor, report)
    db.delete(report)
    db.commit()
    logger.info("Report %s deleted by user %s", report_id, actor.user_id)


# -------------------------------------------------------
# Administrative operations
# -------------------------------------------------------
def transition_status(
    db: Session,
    admin: User,
    report_id: int,
    status: ReportStatus,
    comment: Optional[str] = None,
    estimated_resolution_time=None,
) -> Tuple[Report, bool]:
    report = get_report(db, report_id)
    ensure_in_admin_area(admin, report)

    if estimated_resolution_time is not None:
        report.estimated_resolution_time = as_naive_utc(estimated_resolution_time)

    changed = _set_status(report, status.value, admin, comment)
    if comment:
        _append_comment(report, comment, admin)

    db.commit()
    db.refresh(report)
    logger.info("Report %s status set to %s by admin %s", report.id, report.status, admin.user_id)
    return report, changed


def assign_report(db: Session, admin: User, report_id: int, assignee_id: int, comment: Optional[str] = None) -> Report:
    report = get_report(db, report_id)

    assignee = db.query(User).filter(User.user_id == assignee_id).first()
    if assignee is None or not is_administrator(assignee):
        raise ValidationFailed("Invalid admin user for assignment", code="INVALID_ADMIN_USER")

    report.assignee = assignee
    _append_comment(report, comment or f"Report assigned to {assignee.name} by {admin.name}", admin)

    if report.status == ReportStatus.PENDING.value:
        _set_status(report, ReportStatus.IN_PROGRESS.value, admin, ASSIGNMENT_STATUS_COMMENT)
    else:
        report.updated_at = utcnow()

    db.commit()
    db.refresh(report)
    logger.info("Report %s assigned to %s by admin %s", report.id, assignee.user_id, admin.user_id)
    return report


def add_comment(db: Session, admin: User, report_id: int, text: str) -> AdminComment:
    text = (text or "").strip()
    if not text or len(text) > 500:
        raise ValidationFailed("Comment must be between 1 and 500 characters")

    report = get_report(db, report_id)
    comment = _append_comment(report, text, admin)
    report.updated_at = utcnow()
    db.commit()
    db.refresh(comment)
    return comment


# -------------------------------------------------------
# Upvotes
# -------------------------------------------------------
def toggle_upvote(db: Session, user: User, report_id: int) -> Tuple[bool, int]:
    """Add the user's upvote, or remove it if present. Returns (upvoted, count)."""
    report = get_visible_report(db, user, report_id)

    existing = next((v for v in report.upvotes if v.user_id == user.user_id), None)
    if existing is not None:
        report.upvotes.remove(existing)
        upvoted = False
    else:
        report.upvotes.append(Upvote(user_id=user.user_id, voted_at=utcnow()))
        upvoted = True

    try:
        db.commit()
    except IntegrityError:
        # A concurrent toggle by the same user already stored the vote
        db.rollback()
        raise Conflict("Report already upvoted", code="DUPLICATE_ENTRY")
    db.refresh(report)
    return upvoted, report.upvote_count
