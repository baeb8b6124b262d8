from itertools import product
from types import SimpleNamespace

import pytest

from locallens.errors import PermissionDenied, ReportNotFound
from locallens.policy import (
    Administrator,
    Citizen,
    area_filter,
    can_manage,
    can_view,
    ensure_can_manage,
    ensure_can_view,
    ensure_in_admin_area,
    in_admin_area,
    role_of,
)

OWNER_ID = 1


def make_user(user_id, role="citizen", admin_area=None):
    return SimpleNamespace(user_id=user_id, role=role, admin_area=admin_area)


def make_report(is_public=True, city="Springfield"):
    return SimpleNamespace(reported_by_id=OWNER_ID, is_public=is_public, city=city)


ACTORS = {
    "anonymous": None,
    "owner": make_user(OWNER_ID),
    "stranger": make_user(2),
    "admin": make_user(3, role="administrator"),
    "owner_admin": make_user(OWNER_ID, role="administrator"),
}


def test_role_of():
    assert role_of(None) is None
    assert role_of(make_user(1)) == Citizen()
    assert role_of(make_user(1, role="administrator")) == Administrator(area=None)
    assert role_of(make_user(1, role="administrator", admin_area="Springfield")) == Administrator(area="Springfield")
    # An empty area string means unscoped
    assert role_of(make_user(1, role="administrator", admin_area="")) == Administrator(area=None)


@pytest.mark.parametrize("actor_name,is_public", product(ACTORS, [True, False]))
def test_manage_and_view_truth_table(actor_name, is_public):
    actor = ACTORS[actor_name]
    report = make_report(is_public=is_public)

    is_owner = actor is not None and actor.user_id == OWNER_ID
    is_admin = actor is not None and actor.role == "administrator"

    assert can_manage(actor, report) == (is_owner or is_admin)
    assert can_view(actor, report) == (is_public or is_owner or is_admin)


def test_ensure_can_view_hides_private_reports():
    with pytest.raises(ReportNotFound):
        ensure_can_view(ACTORS["stranger"], make_report(is_public=False))
    ensure_can_view(ACTORS["stranger"], make_report(is_public=True))


def test_ensure_can_manage():
    with pytest.raises(PermissionDenied):
        ensure_can_manage(ACTORS["stranger"], make_report(is_public=True))
    with pytest.raises(ReportNotFound):
        ensure_can_manage(ACTORS["stranger"], make_report(is_public=False))
    ensure_can_manage(ACTORS["owner"], make_report(is_public=False))
    ensure_can_manage(ACTORS["admin"], make_report(is_public=False))


def test_area_scoping():
    scoped = make_user(5, role="administrator", admin_area="spring")
    assert area_filter(scoped) == "spring"
    assert area_filter(ACTORS["admin"]) is None
    assert area_filter(ACTORS["owner"]) is None

    assert in_admin_area(scoped, make_report(city="Springfield"))
    assert not in_admin_area(scoped, make_report(city="Shelbyville"))
    assert in_admin_area(ACTORS["admin"], make_report(city="Shelbyville"))

    with pytest.raises(PermissionDenied) as exc:
        ensure_in_admin_area(scoped, make_report(city="Shelbyville"))
    assert exc.value.code == "AREA_ACCESS_DENIED"
