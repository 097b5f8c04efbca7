from datetime import date, datetime
from types import SimpleNamespace

import pytest

from dashboard_app.errors import BadRequestError
from dashboard_app.schemas.analytics import StatRow
from dashboard_app.services.analytics_aggregation import (
    aggregate_chart_data,
    aggregate_model_comparison,
    calculate_change,
    calculate_overall_stats,
    chart_label,
    ctr_percentage,
    link_source_names,
    parse_list_param,
    parse_source_filters,
    resolve_period,
    resolve_source_filter,
)

NOW = datetime(2024, 10, 19, 14, 25, 30)


def row(day, slug="luna", country="US", source="organic", views=0, clicks=0):
    return StatRow(
        date=day, model_slug=slug, country=country, traffic_source=source,
        views=views, clicks=clicks, total_events=views + clicks,
    )


class TestPeriods:
    """Current and previous windows per period"""

    def test_rolling_days(self):
        period = resolve_period("7days", NOW)
        assert period.start == date(2024, 10, 12)
        assert period.end == date(2024, 10, 19)
        assert period.prev_start == date(2024, 10, 5)
        assert period.prev_end == date(2024, 10, 11)
        assert not period.hourly

    def test_default_and_unknown_period(self):
        assert resolve_period(None, NOW).period == "30days"
        unknown = resolve_period("fortnight", NOW)
        assert unknown.period == "30days"
        assert unknown.start == date(2024, 9, 19)

    def test_today_compares_with_yesterday(self):
        period = resolve_period("today", NOW)
        assert period.start == period.end == date(2024, 10, 19)
        assert period.prev_start == period.prev_end == date(2024, 10, 18)

    def test_hour_uses_hourly_buckets(self):
        period = resolve_period("hour", NOW)
        assert period.hourly
        assert period.start == datetime(2024, 10, 19, 13, 0)
        assert period.end == NOW
        assert period.prev_start == datetime(2024, 10, 19, 12, 0)
        assert period.prev_end == datetime(2024, 10, 19, 12, 59, 59)

    def test_all_has_no_previous(self):
        period = resolve_period("all", NOW, data_start="2024-01-01")
        assert period.start == date(2024, 1, 1)
        assert not period.has_previous

    def test_custom_previous_has_same_length(self):
        period = resolve_period("custom", NOW, "2024-10-10", "2024-10-14")
        assert period.prev_end == date(2024, 10, 9)
        assert period.prev_start == date(2024, 10, 5)

    def test_custom_validation(self):
        with pytest.raises(BadRequestError):
            resolve_period("custom", NOW, "2024-10-14", "2024-10-10")
        with pytest.raises(BadRequestError):
            resolve_period("custom", NOW, "not-a-date", "2024-10-10")


class TestFilterParsing:
    def test_list_params(self):
        assert parse_list_param(None) == []
        assert parse_list_param("luna,mia") == ["luna", "mia"]
        assert parse_list_param('["luna","mia"]') == ["luna", "mia"]

    def test_source_filters_with_subtags(self):
        names, subtags = parse_source_filters(
            '["Organic", {"source": "Reddit", "subtags": ["r/pics"]}]'
        )
        assert names == ["Organic", "Reddit"]
        assert subtags == {"reddit": ["r/pics"]}


class TestSourceResolution:
    """Source names to traffic_source values"""

    sources = [
        SimpleNamespace(id="s-ig", name="Instagram", slug="instagram"),
        SimpleNamespace(id="s-rd", name="Reddit", slug="reddit"),
        SimpleNamespace(id="s-md", name="Model Directory", slug="model-directory"),
    ]
    subtags = [SimpleNamespace(id="t-pics", source_id="s-rd", name="r/pics")]
    links = [
        SimpleNamespace(id="l1", source_id="s-ig", subtag_id=None),
        SimpleNamespace(id="l2", source_id="s-rd", subtag_id="t-pics"),
        SimpleNamespace(id="l3", source_id="s-rd", subtag_id=None),
        SimpleNamespace(id="l4", source_id="s-md", subtag_id=None),
    ]

    def resolve(self, names, subtag_filters=None):
        return resolve_source_filter(
            names, subtag_filters or {}, self.links, self.sources, self.subtags
        )

    def test_organic_and_direct(self):
        assert self.resolve(["Organic"]) == ["organic"]
        assert self.resolve(["direct"]) == ["organic"]

    def test_by_name_slug_and_partial(self):
        assert self.resolve(["instagram"]) == ["l1"]
        assert self.resolve(["model-directory"]) == ["l4"]
        assert self.resolve(["Directory"]) == ["l4"]

    def test_subtag_narrows_links(self):
        assert self.resolve(["Reddit"]) == ["l2", "l3"]
        assert self.resolve(["Reddit"], {"reddit": ["r/pics"]}) == ["l2"]

    def test_unknown_source_resolves_to_nothing(self):
        assert self.resolve(["Snapchat"]) == []

    def test_source_names(self):
        names = link_source_names(self.links, self.sources)
        assert names["l1"] == "Instagram"
        assert names["organic"] == "Organic"


class TestMath:
    def test_ctr(self):
        assert ctr_percentage(0, 5) == 0
        assert ctr_percentage(3, 1) == 33.33

    def test_change(self):
        assert calculate_change(10, 0) == 100
        assert calculate_change(0, 0) == 0
        assert calculate_change(150, 100) == 50
        assert calculate_change(50, 100) == -50

    def test_labels(self):
        assert chart_label("2024-10-05", hourly=False) == "Oct 5"
        assert chart_label("2024-10-05T14:00:00", hourly=True) == "14:00"


class TestAggregation:
    """Chart data, overall stats and model comparison"""

    def test_chart_data_aligns_previous_by_position(self):
        current = [
            row("2024-10-18", views=5, clicks=1),
            row("2024-10-18", slug="mia", views=2),
            row("2024-10-19", views=4, clicks=2),
        ]
        previous = [row("2024-10-16", views=3, clicks=1)]

        points = aggregate_chart_data(current, previous)
        assert [(p.date, p.views, p.clicks) for p in points] == [
            ("2024-10-18", 7, 1), ("2024-10-19", 4, 2),
        ]
        assert (points[0].visits_prev, points[0].clicks_prev) == (3, 1)
        assert (points[1].visits_prev, points[1].clicks_prev) == (0, 0)
        assert points[0].label == "Oct 18"

    def test_overall_stats(self):
        current = [
            row("2024-10-19", views=10, clicks=2),
            row("2024-10-19", slug="mia", country="DE", source="l1", views=30, clicks=3),
        ]
        previous = [row("2024-10-18", views=20, clicks=5)]

        stats, models = calculate_overall_stats(
            current, previous, {"organic": "Organic", "l1": "Instagram"}
        )
        assert stats.total_views == 40
        assert stats.total_clicks == 5
        assert stats.ctr == 12.5
        assert stats.unique_countries == 2
        assert stats.visits_change == 100
        assert stats.clicks_change == 0
        assert stats.main_layout_visits == 10
        assert stats.tracking_link_visits == 30
        assert stats.top_sources[0].source_name == "Instagram"
        assert [model.model_slug for model in models] == ["mia", "luna"]

    def test_no_previous_period_means_no_change(self):
        stats, _ = calculate_overall_stats([row("2024-10-19", views=5)], [], {}, has_previous=False)
        assert stats.visits_change == 0

    def test_stats_serialize_camel_case(self):
        stats, _ = calculate_overall_stats([row("2024-10-19", views=5)], [], {})
        dumped = stats.model_dump(by_alias=True)
        assert "totalViews" in dumped
        assert "mainLayoutVisits" in dumped

    def test_model_comparison_fills_zeros(self):
        rows = [row("2024-10-18", views=5), row("2024-10-19", slug="mia", views=2)]
        assert aggregate_model_comparison(rows, ["luna", "mia"]) == [
            {"date": "2024-10-18", "luna": 5, "mia": 0},
            {"date": "2024-10-19", "luna": 0, "mia": 2},
        ]
