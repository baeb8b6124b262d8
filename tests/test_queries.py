from datetime import timedelta

import pytest

from locallens import lifecycle, queries
from locallens.database import utcnow
from locallens.models.report import ReportCreate, ReportStatus, SortField, SortOrder, Timeframe
from locallens.models.user import UserRole


@pytest.fixture
def seeded(db_session, citizen, other_citizen, admin):
    """Eight reports across two cities with mixed priorities, statuses and votes."""
    specs = [
        ("Pothole near school gate", "road", "high", "Springfield", True),
        ("Flickering lamp by park", "streetlight", "low", "Springfield", True),
        ("Burst main on 5th", "water", "urgent", "Shelbyville", True),
        ("Loud generator at night", "noise", "medium", "Springfield", False),
        ("Garbage pile behind market", "cleanliness", "medium", "Shelbyville", True),
        ("Blocked culvert after storm", "drainage", "high", "Springfield", True),
        ("Missing stop sign", "traffic", "urgent", "Capital City", True),
        ("Scaffolding over sidewalk", "construction", "low", "Springfield", True),
    ]
    reports = []
    for i, (title, category, priority, city, is_public) in enumerate(specs):
        owner = citizen if i % 2 == 0 else other_citizen
        payload = ReportCreate(
            title=title,
            description=f"{title}: reported by a neighbour, needs attention soon.",
            category=category,
            priority=priority,
            is_public=is_public,
            location={"address": f"{i} Main St", "coordinates": {"lat": 1.0, "lng": 1.0}, "city": city},
        )
        reports.append(lifecycle.create_report(db_session, owner, payload))

    lifecycle.toggle_upvote(db_session, citizen, reports[2].id)
    lifecycle.toggle_upvote(db_session, other_citizen, reports[2].id)
    lifecycle.toggle_upvote(db_session, citizen, reports[5].id)
    lifecycle.transition_status(db_session, admin, reports[0].id, ReportStatus.RESOLVED)
    lifecycle.transition_status(db_session, admin, reports[1].id, ReportStatus.IN_PROGRESS)
    return reports


def ids(page):
    return [r.id for r in page.items]


def test_page_math():
    page = queries.Page(items=[], total=21, page=2, limit=10)
    assert page.total_pages == 3
    assert page.has_next
    assert page.has_prev
    assert not queries.Page(total=0, page=1, limit=10).has_next


@pytest.mark.parametrize("sort_by", list(SortField))
@pytest.mark.parametrize("sort_order", list(SortOrder))
def test_consecutive_pages_are_disjoint_slices(db_session, seeded, sort_by, sort_order):
    filters = queries.ReportFilters()
    everything = ids(queries.list_reports(db_session, filters, 1, 100, sort_by, sort_order))
    assert len(everything) == len(seeded)

    for limit in (2, 3):
        collected = []
        page_no = 1
        while True:
            page = queries.list_reports(db_session, filters, page_no, limit, sort_by, sort_order)
            collected.extend(ids(page))
            if not page.has_next:
                break
            page_no += 1
        assert collected == everything


def test_public_only(db_session, seeded):
    page = queries.list_reports(db_session, queries.ReportFilters(public_only=True))
    assert page.total == 7
    assert all(r.is_public for r in page.items)


def test_filters_are_conjunctive(db_session, seeded):
    filters = queries.ReportFilters(city="springfield", priority="high")
    page = queries.list_reports(db_session, filters, limit=50)
    assert {r.title for r in page.items} == {"Pothole near school gate", "Blocked culvert after storm"}

    filters = queries.ReportFilters(city="springfield", priority="high", status=ReportStatus.PENDING)
    assert [r.title for r in queries.list_reports(db_session, filters).items] == ["Blocked culvert after storm"]


def test_search_covers_title_description_and_address(db_session, seeded):
    assert queries.list_reports(db_session, queries.ReportFilters(search="GENERATOR")).total == 1
    assert queries.list_reports(db_session, queries.ReportFilters(search="neighbour")).total == 8
    assert queries.list_reports(db_session, queries.ReportFilters(search="7 main st")).total == 1


def test_search_treats_wildcards_literally(db_session, seeded):
    assert queries.list_reports(db_session, queries.ReportFilters(search="%")).total == 0
    assert queries.list_reports(db_session, queries.ReportFilters(search="_")).total == 0


def test_area_replaces_city_filter(db_session, seeded):
    both = queries.ReportFilters(area="shelby", city="spring")
    page = queries.list_reports(db_session, both)
    assert page.total == 2
    assert {r.city for r in page.items} == {"Shelbyville"}
    assert queries.list_reports(db_session, queries.ReportFilters(city="spring")).total == 5
    assert queries.list_reports(db_session, queries.ReportFilters(area="shelby")).total == 2


def test_date_range(db_session, seeded):
    now = utcnow()
    assert queries.list_reports(db_session, queries.ReportFilters(date_from=now - timedelta(hours=1))).total == 8
    assert queries.list_reports(db_session, queries.ReportFilters(date_to=now - timedelta(hours=1))).total == 0


def test_sort_by_priority(db_session, seeded):
    page = queries.list_reports(db_session, queries.ReportFilters(), 1, 100, SortField.PRIORITY, SortOrder.DESC)
    priorities = [r.priority for r in page.items]
    assert priorities[:2] == ["urgent", "urgent"]
    assert priorities[-2:] == ["low", "low"]


def test_sort_by_upvotes(db_session, seeded):
    page = queries.list_reports(db_session, queries.ReportFilters(), 1, 3, SortField.UPVOTE_COUNT, SortOrder.DESC)
    assert [r.upvote_count for r in page.items] == [2, 1, 0]
    assert page.items[0].id == seeded[2].id


def test_status_counts(db_session, seeded, citizen):
    counts = queries.status_counts(db_session, queries.ReportFilters())
    assert (counts.total, counts.pending, counts.in_progress, counts.resolved) == (8, 6, 1, 1)

    mine = queries.status_counts(db_session, queries.ReportFilters(reported_by=citizen.user_id))
    assert mine.total == 4


def test_dashboard_aggregates(db_session, seeded, citizen):
    board = queries.dashboard(db_session, None, Timeframe.YEAR)
    assert board.overview.total_reports == 8
    assert board.overview.resolved_reports == 1
    assert board.admin_area == queries.ALL_AREAS

    road = next(c for c in board.category_breakdown if c.category == "road")
    assert (road.count, road.pending, road.resolved) == (1, 0, 1)

    assert [p.priority for p in board.priority_distribution] == ["low", "medium", "high", "urgent"]
    assert [p.count for p in board.priority_distribution] == [2, 2, 2, 2]

    assert len(board.recent_trend) == 1
    assert board.recent_trend[0].date == utcnow().date().isoformat()
    assert board.recent_trend[0].count == 8
    assert board.recent_trend[0].resolved == 1

    assert board.top_reporters[0].id == citizen.user_id
    assert board.top_reporters[0].resolved_count == 1
    assert len(board.recent_activity) == 8
    assert board.average_resolution_time >= 0


def test_dashboard_scoped_to_area(db_session, seeded):
    board = queries.dashboard(db_session, "Shelbyville", Timeframe.WEEK)
    assert board.overview.total_reports == 2
    assert board.admin_area == "Shelbyville"
    assert {c.category for c in board.category_breakdown} == {"water", "cleanliness"}


def test_average_resolution_only_counts_resolved(db_session, seeded):
    report = seeded[0]
    report.resolved_at = report.created_at + timedelta(days=2)
    db_session.commit()
    assert queries.average_resolution_days(db_session, []) == pytest.approx(2.0)


def test_lookback_start():
    now = utcnow()
    assert queries.lookback_start(Timeframe.QUARTER, now) == now - timedelta(days=90)
    assert queries.lookback_start(Timeframe.YEAR, now) == now - timedelta(days=365)


def test_list_users(db_session, citizen, other_citizen, admin):
    page = queries.list_users(db_session, role=UserRole.ADMINISTRATOR)
    assert [u.email for u in page.items] == ["admin@example.com"]

    page = queries.list_users(db_session, sort_by="name", sort_order=SortOrder.ASC)
    assert [u.name for u in page.items] == ["Admin", "Alice", "Bob"]
