"""
Tests for the dashboard refresh cycle.

Feed clients and the vendor poller are replaced with in-memory fakes so
the tests focus on fan-out, failure isolation and stale-cycle handling.
"""

import asyncio
import csv
import io
from dataclasses import replace

from fakes import (
    NOW,
    FakeServiceNow,
    FakeSolarWinds,
    make_alert,
    make_dashboard,
    make_outage,
)
from statusboard.dashboard import FeedResult, filter_alerts, guard
from statusboard.errors import ConfigurationMissing, UpstreamRejected
from statusboard.export import HEADER, export_filename, outages_to_csv
from statusboard.models import OPERATIONAL, Settings


# ─── Refresh cycle ────────────────────────────────────────────


class TestRefresh:
    def test_full_cycle(self):
        dashboard = make_dashboard()
        snapshot = asyncio.run(dashboard.refresh())

        assert dashboard.snapshot is snapshot
        assert snapshot.generated_at == NOW
        assert [v.status for v in snapshot.vendors] == [OPERATIONAL]
        assert all(feed.ok for feed in snapshot.feeds)
        assert [o.id for o in snapshot.active_outages.items] == ["OUT1"]
        assert len(snapshot.tickets.items) == 1
        assert len(snapshot.alerts.items) == 2

        changes = snapshot.changes.items
        assert [c.number for c in changes] == ["CHG1", "CHG3"]
        assert [c.is_hot for c in changes] == [True, False]

        assert snapshot.trends_by_impact.buckets[-1].counts == {"Outage": 1, "Degradation": 0}
        assert snapshot.trends_by_impact.total == 2
        assert snapshot.trends_by_system.keys == ["Payments API"]

    def test_failing_feed_is_isolated(self):
        servicenow = FakeServiceNow(failures={"tickets": UpstreamRejected("Tickets: HTTP 500", status=500)})
        snapshot = asyncio.run(make_dashboard(servicenow=servicenow).refresh())

        assert snapshot.tickets.items == []
        assert snapshot.tickets.error == "Failed to fetch tickets: Tickets: HTTP 500"
        assert snapshot.tickets.configured is True
        assert snapshot.active_outages.ok
        assert snapshot.alerts.ok
        assert len(snapshot.outage_history.items) == 2

    def test_unconfigured_feed(self):
        solarwinds = FakeSolarWinds(error=ConfigurationMissing("solarwinds integration is not configured"))
        snapshot = asyncio.run(make_dashboard(solarwinds=solarwinds).refresh())
        assert snapshot.alerts.configured is False
        assert snapshot.alerts.ok is False
        assert snapshot.alerts.items == []

    def test_unexpected_error_carries_detail(self):
        servicenow = FakeServiceNow(failures={"history": KeyError("begin")})
        snapshot = asyncio.run(make_dashboard(servicenow=servicenow).refresh())
        assert snapshot.outage_history.error.startswith("Unexpected error while fetching outage history")
        assert "KeyError" in snapshot.outage_history.detail
        assert snapshot.trends_by_impact.total == 0
        assert len(snapshot.trends_by_impact.buckets) == 7

    def test_changes_without_active_outages_are_not_hot(self):
        servicenow = FakeServiceNow(failures={"active": UpstreamRejected("down")})
        snapshot = asyncio.run(make_dashboard(servicenow=servicenow).refresh())
        assert [c.is_hot for c in snapshot.changes.items] == [False, False]


class TestSupersede:
    def test_newer_refresh_discards_stale_cycle(self):
        async def scenario():
            dashboard = make_dashboard(servicenow=FakeServiceNow(delay=0.2))
            first = asyncio.ensure_future(dashboard.refresh())
            await asyncio.sleep(0.05)
            second = await dashboard.refresh()
            return dashboard, await first, second

        dashboard, first, second = asyncio.run(scenario())
        assert first is None
        assert second is not None
        assert dashboard.snapshot is second


class TestRunLoop:
    def test_run_refreshes_until_cancelled(self):
        async def scenario():
            snapshots = []
            dashboard = make_dashboard(settings=Settings(refresh_interval=0))
            task = asyncio.ensure_future(dashboard.run(on_snapshot=snapshots.append))
            while len(snapshots) < 3:
                await asyncio.sleep(0.01)
            task.cancel()
            await task
            return snapshots

        snapshots = asyncio.run(scenario())
        assert len(snapshots) >= 3

    def test_backoff_is_bounded(self):
        dashboard = make_dashboard(settings=Settings(refresh_interval=30, base_backoff=2, max_retries=5))
        dashboard._consecutive_errors = 1
        assert 2 <= dashboard._backoff_delay() <= 3
        dashboard._consecutive_errors = 50
        assert dashboard._backoff_delay() == 30.0


# ─── Helpers ──────────────────────────────────────────────────


class TestGuard:
    def test_success(self):
        async def fetch():
            return (1, 2)

        result = asyncio.run(guard("numbers", fetch))
        assert result == FeedResult(name="numbers", items=[1, 2])
        assert result.ok


class TestFilterAlerts:
    def test_validated_only(self):
        alerts = [make_alert("1", True), make_alert("2", False)]
        assert [a.id for a in filter_alerts(alerts, validated_only=True)] == ["1"]
        assert len(filter_alerts(alerts)) == 2

    def test_search_matches_type_or_system(self):
        alerts = [
            make_alert("1", True, type="CPU high", system="db-01"),
            make_alert("2", True, type="Node down", system="core-sw-01"),
        ]
        assert [a.id for a in filter_alerts(alerts, query=" cpu ")] == ["1"]
        assert [a.id for a in filter_alerts(alerts, query="CORE")] == ["2"]


class TestExport:
    def test_csv(self):
        outage = make_outage("OUT1")
        text = outages_to_csv([outage])
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == HEADER
        assert rows[1][0] == "OUT1"
        assert rows[1][3] == outage.start_time.isoformat()
        assert rows[1][5] == "Card auth failing, retrying"
        assert rows[1][6] == ""
        assert '"Card auth failing, retrying"' in text

    def test_text_columns_always_quoted(self):
        text = outages_to_csv([make_outage("OUT1")])
        line = text.splitlines()[1]
        assert line.startswith('OUT1,"Payments API",Outage,')
        assert text.splitlines()[0] == ",".join(HEADER)

    def test_embedded_quotes_are_doubled(self):
        outage = replace(make_outage("OUT1"), system_name='Core "A"', description="")
        rows = list(csv.reader(io.StringIO(outages_to_csv([outage]))))
        assert rows[1][1] == 'Core "A"'
        assert rows[1][5] == ""
        assert '"Core ""A"""' in outages_to_csv([outage])

    def test_filename(self):
        assert export_filename(NOW) == "outage-history-2026-10-19.csv"
