"""Role model and access rules for reports.

Roles are derived per request from the stored user; nothing here is persisted
as a capability. ``actor`` may be ``None`` for anonymous callers.
"""
from dataclasses import dataclass
from typing import Optional, Union

from .errors import PermissionDenied, ReportNotFound
from .models.user import UserRole


@dataclass(frozen=True)
class Citizen:
    pass


@dataclass(frozen=True)
class Administrator:
    area: Optional[str] = None


Role = Union[Citizen, Administrator]


def role_of(user) -> Optional[Role]:
    if user is None:
        return None
    if user.role == UserRole.ADMINISTRATOR.value:
        return Administrator(area=user.admin_area or None)
    return Citizen()


def is_administrator(user) -> bool:
    return isinstance(role_of(user), Administrator)


def is_owner(actor, report) -> bool:
    return actor is not None and actor.user_id == report.reported_by_id


def can_manage(actor, report) -> bool:
    return is_administrator(actor) or is_owner(actor, report)


def can_view(actor, report) -> bool:
    return bool(report.is_public) or can_manage(actor, report)


def area_filter(actor) -> Optional[str]:
    """City pattern an administrator's listings are scoped to, if any."""
    role = role_of(actor)
    if isinstance(role, Administrator):
        return role.area
    return None


def in_admin_area(actor, report) -> bool:
    area = area_filter(actor)
    if not area:
        return True
    return area.lower() in (report.city or "").lower()


# -------------------------------------------------------
# Guards raising client errors
# -------------------------------------------------------
def ensure_can_view(actor, report) -> None:
    # Private reports are indistinguishable from missing ones for strangers
    if not can_view(actor, report):
        raise ReportNotFound()


def ensure_can_manage(actor, report) -> None:
    ensure_can_view(actor, report)
    if not can_manage(actor, report):
        raise PermissionDenied("Access denied", code="ACCESS_DENIED")


def ensure_in_admin_area(actor, report) -> None:
    """Area check applied by the status-update path only."""
    if not in_admin_area(actor, report):
        raise PermissionDenied(
            "Access denied - report outside your administrative area",
            code="AREA_ACCESS_DENIED",
        )
