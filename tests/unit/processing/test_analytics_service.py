from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from rvu_tracker.src.core.exceptions import AggregationFailed, InvalidGranularity, MissingDateRange
from rvu_tracker.src.processing.analytics_service import AggregationMode, AnalyticsAggregator, Granularity

TEST_USER_ID = "test-user-123"

JAN_25 = date(2025, 1, 25) # Saturday


@pytest.fixture
def aggregator(mock_metrics_collector) -> AnalyticsAggregator:
    return AnalyticsAggregator(metrics_collector=mock_metrics_collector)


@pytest.mark.parametrize("token,expected", [
    (None, Granularity.DAY),
    ("", Granularity.DAY),
    ("   ", Granularity.DAY),
    ("daily", Granularity.DAY),
    ("weekly", Granularity.WEEK),
    ("Monthly", Granularity.MONTH),
    (" yearly ", Granularity.YEAR),
    ("week", Granularity.WEEK),
])
def test_granularity_parse(token, expected):
    assert Granularity.parse(token) is expected


@pytest.mark.parametrize("token", ["quarterly", "hourly", "d"])
def test_granularity_parse_rejects_unknown_tokens(token):
    with pytest.raises(InvalidGranularity):
        Granularity.parse(token)


@pytest.mark.asyncio
async def test_daily_summary_counts_encounters_and_no_shows(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1)])
    await seed_visit(JAN_25, is_no_show=True)

    result = await aggregator.aggregate(db_session, TEST_USER_ID, "daily", JAN_25, JAN_25)

    assert len(result) == 1
    assert result[0].period_start == JAN_25
    assert result[0].total_work_rvu == Decimal("1.30")
    assert result[0].total_encounters == 1
    assert result[0].total_no_shows == 1


@pytest.mark.asyncio
async def test_empty_range_returns_empty_results(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1)])
    start, end = date(2099, 1, 1), date(2099, 1, 2)

    assert await aggregator.aggregate(db_session, TEST_USER_ID, "daily", start, end) == []
    assert await aggregator.aggregate(db_session, TEST_USER_ID, "daily", start, end, AggregationMode.BREAKDOWN) == []


@pytest.mark.asyncio
async def test_reversed_range_returns_empty_results(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1)])

    assert await aggregator.aggregate(db_session, TEST_USER_ID, "daily", date(2025, 1, 31), date(2025, 1, 1)) == []


@pytest.mark.asyncio
async def test_quantity_multiplies_work_rvu(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 2), ("99214", "1.92", 1)])

    summary = await aggregator.aggregate(db_session, TEST_USER_ID, "daily", JAN_25, JAN_25)

    assert summary[0].total_work_rvu == Decimal("4.52")
    # One visit with two procedure lines is still a single encounter
    assert summary[0].total_encounters == 1


@pytest.mark.asyncio
async def test_weekly_summary_buckets_on_iso_monday(aggregator, db_session, seed_visit):
    await seed_visit(date(2025, 1, 20), procedures=[("99213", "1.30", 1)]) # Monday
    await seed_visit(date(2025, 1, 26), procedures=[("99214", "1.92", 1)]) # Sunday, same week
    await seed_visit(date(2025, 1, 27), procedures=[("99212", "0.70", 1)]) # next Monday

    summary = await aggregator.aggregate(db_session, TEST_USER_ID, "weekly", date(2025, 1, 1), date(2025, 1, 31))

    assert [s.period_start for s in summary] == [date(2025, 1, 20), date(2025, 1, 27)]
    assert summary[0].total_work_rvu == Decimal("3.22")
    assert summary[0].total_encounters == 2
    assert summary[1].total_work_rvu == Decimal("0.70")


@pytest.mark.asyncio
async def test_monthly_and_yearly_summary_boundaries(aggregator, db_session, seed_visit):
    await seed_visit(date(2024, 12, 31), procedures=[("99213", "1.30", 1)])
    await seed_visit(date(2025, 1, 2), procedures=[("99213", "1.30", 1)])
    await seed_visit(date(2025, 2, 14), procedures=[("99214", "1.92", 1)])

    monthly = await aggregator.aggregate(db_session, TEST_USER_ID, "monthly", date(2024, 12, 1), date(2025, 2, 28))
    assert [m.period_start for m in monthly] == [date(2024, 12, 1), date(2025, 1, 1), date(2025, 2, 1)]

    yearly = await aggregator.aggregate(db_session, TEST_USER_ID, "yearly", date(2024, 1, 1), date(2025, 12, 31))
    assert [y.period_start for y in yearly] == [date(2024, 1, 1), date(2025, 1, 1)]
    assert yearly[1].total_work_rvu == Decimal("3.22")
    assert yearly[1].total_encounters == 2


@pytest.mark.asyncio
async def test_summary_periods_are_ascending(aggregator, db_session, seed_visit):
    for day in (date(2025, 1, 3), date(2025, 1, 1), date(2025, 1, 2)):
        await seed_visit(day, procedures=[("99213", "1.30", 1)])

    summary = await aggregator.aggregate(db_session, TEST_USER_ID, "daily", date(2025, 1, 1), date(2025, 1, 3))

    assert [s.period_start for s in summary] == [date(2025, 1, 1), date(2025, 1, 2), date(2025, 1, 3)]


@pytest.mark.asyncio
async def test_no_show_only_period_reports_zero_rvu(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, is_no_show=True)

    summary = await aggregator.aggregate(db_session, TEST_USER_ID, "daily", JAN_25, JAN_25)

    assert summary[0].total_work_rvu == Decimal("0.00")
    assert summary[0].total_encounters == 0
    assert summary[0].total_no_shows == 1


@pytest.mark.asyncio
async def test_other_users_visits_are_excluded(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1)])
    await seed_visit(JAN_25, procedures=[("99215", "2.80", 3)], user_id="other-user-456")

    summary = await aggregator.aggregate(db_session, TEST_USER_ID, "daily", JAN_25, JAN_25)
    breakdown = await aggregator.aggregate(db_session, TEST_USER_ID, "daily", JAN_25, JAN_25, AggregationMode.BREAKDOWN)

    assert summary[0].total_work_rvu == Decimal("1.30")
    assert [b.hcpcs for b in breakdown] == ["99213"]


@pytest.mark.asyncio
async def test_breakdown_groups_by_code_within_period(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1), ("20610", "0.79", 2)])
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1)])
    await seed_visit(JAN_25, is_no_show=True)

    breakdown = await aggregator.aggregate(db_session, TEST_USER_ID, "daily", JAN_25, JAN_25, AggregationMode.BREAKDOWN)

    assert [(b.hcpcs, b.total_work_rvu, b.total_quantity, b.encounter_count) for b in breakdown] == [
        ("99213", Decimal("2.60"), 2, 2),
        ("20610", Decimal("1.58"), 2, 1),
    ]
    assert breakdown[0].description == "Procedure 99213"
    assert breakdown[0].status_code == "A"


@pytest.mark.asyncio
async def test_breakdown_orders_newest_period_first(aggregator, db_session, seed_visit):
    await seed_visit(date(2025, 1, 6), procedures=[("99215", "2.80", 1)])
    await seed_visit(date(2025, 1, 13), procedures=[("99212", "0.70", 1)])

    breakdown = await aggregator.aggregate(db_session, TEST_USER_ID, "weekly", date(2025, 1, 1), date(2025, 1, 31), AggregationMode.BREAKDOWN)

    assert [(b.period_start, b.hcpcs) for b in breakdown] == [
        (date(2025, 1, 13), "99212"),
        (date(2025, 1, 6), "99215"),
    ]


@pytest.mark.asyncio
async def test_breakdown_keeps_distinct_descriptions_apart(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1, "Office visit")])
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1, "Office o/p est low 20 min")])

    breakdown = await aggregator.aggregate(db_session, TEST_USER_ID, "daily", JAN_25, JAN_25, AggregationMode.BREAKDOWN)

    assert len(breakdown) == 2
    assert {b.description for b in breakdown} == {"Office visit", "Office o/p est low 20 min"}


@pytest.mark.asyncio
async def test_repeated_aggregation_is_stable(aggregator, db_session, seed_visit):
    await seed_visit(JAN_25, procedures=[("99213", "1.30", 1)])

    first = await aggregator.aggregate(db_session, TEST_USER_ID, "monthly", date(2025, 1, 1), date(2025, 1, 31))
    second = await aggregator.aggregate(db_session, TEST_USER_ID, "monthly", date(2025, 1, 1), date(2025, 1, 31))

    assert first == second


@pytest.mark.asyncio
async def test_missing_dates_raise_before_granularity_is_checked(aggregator, db_session):
    with pytest.raises(MissingDateRange):
        await aggregator.aggregate(db_session, TEST_USER_ID, "quarterly", None, JAN_25)
    with pytest.raises(MissingDateRange):
        await aggregator.aggregate(db_session, TEST_USER_ID, "daily", JAN_25, None)


@pytest.mark.asyncio
async def test_invalid_granularity_raises(aggregator, db_session):
    with pytest.raises(InvalidGranularity):
        await aggregator.aggregate(db_session, TEST_USER_ID, "quarterly", JAN_25, JAN_25)


@pytest.mark.asyncio
async def test_database_error_raises_aggregation_failed(aggregator, mock_metrics_collector):
    mock_session = MagicMock()
    mock_session.get_bind.return_value.dialect.name = "postgresql"
    mock_session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("connection lost")))

    with pytest.raises(AggregationFailed) as exc_info:
        await aggregator.aggregate(mock_session, TEST_USER_ID, "weekly", JAN_25, JAN_25)

    assert isinstance(exc_info.value.__cause__, OperationalError)
    mock_metrics_collector.record_analytics_request.assert_called_once_with(mode='summary', granularity='week', outcome='error')


@pytest.mark.asyncio
async def test_successful_aggregation_records_metrics(aggregator, db_session, mock_metrics_collector):
    await aggregator.aggregate(db_session, TEST_USER_ID, "yearly", JAN_25, JAN_25, AggregationMode.BREAKDOWN)

    mock_metrics_collector.time_db_query.assert_called_once_with("analytics_breakdown")
    mock_metrics_collector.record_analytics_request.assert_called_once_with(mode='breakdown', granularity='year', outcome='success')
