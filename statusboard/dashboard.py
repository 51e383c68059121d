"""
Dashboard refresh cycle.

A cycle fans out every independent fetch (vendor probes, active outages,
outage history, tickets, alerts, changes) concurrently, guards each one so
a single failing feed only marks that feed as failed, then derives the
trend series and the hot-change correlation from the fresh data.

Starting a new refresh cancels the one still in flight; the stale cycle's
results are discarded so they can never overwrite a fresher snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import random
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence

from statusboard.changes import scheduled_changes
from statusboard.clients import ServiceNowClient, SolarWindsClient
from statusboard.errors import ConfigurationMissing, CredentialsMissing, UpstreamError
from statusboard.models import (
    CanonicalOutage,
    MonitoringAlert,
    Settings,
    TrendSeries,
    VendorProbeResult,
    VendorProbeSpec,
)
from statusboard.trends import GROUP_BY_IMPACT, GROUP_BY_SYSTEM, aggregate
from statusboard.vendors import VendorStatusPoller

logger = logging.getLogger(__name__)


@dataclass
class FeedResult:
    """
    Outcome of one feed within a cycle.

    Attributes:
        name: Feed name, e.g. "tickets".
        items: Canonical records (empty on failure).
        configured: False when the integration is disabled/unset.
        error: User-visible failure message, None on success.
        detail: Diagnostic detail (stack trace) for unexpected faults.
    """

    name: str
    items: List[Any] = field(default_factory=list)
    configured: bool = True
    error: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.configured and self.error is None


@dataclass
class DashboardSnapshot:
    """Everything the dashboard shows, built fresh by one cycle."""

    generated_at: datetime
    vendors: List[VendorProbeResult]
    active_outages: FeedResult
    outage_history: FeedResult
    tickets: FeedResult
    alerts: FeedResult
    changes: FeedResult
    trends_by_impact: TrendSeries
    trends_by_system: TrendSeries

    @property
    def feeds(self) -> List[FeedResult]:
        return [self.active_outages, self.outage_history, self.tickets, self.alerts, self.changes]


async def guard(name: str, fetch: Callable[[], Awaitable[List[Any]]]) -> FeedResult:
    """Run one feed fetch and convert its failure into a FeedResult."""
    try:
        return FeedResult(name=name, items=list(await fetch()))
    except asyncio.CancelledError:
        raise
    except (ConfigurationMissing, CredentialsMissing) as exc:
        logger.info("%s not available: %s", name, exc)
        return FeedResult(name=name, configured=False, error=str(exc))
    except UpstreamError as exc:
        logger.warning("Failed to fetch %s: %s", name, exc)
        return FeedResult(name=name, error=f"Failed to fetch {name}: {exc}")
    except Exception as exc:
        logger.exception("Unexpected error while fetching %s", name)
        return FeedResult(
            name=name,
            error=f"Unexpected error while fetching {name}: {exc}",
            detail=traceback.format_exc(),
        )


def filter_alerts(
    alerts: Iterable[MonitoringAlert],
    validated_only: bool = False,
    query: str = "",
) -> List[MonitoringAlert]:
    """Validated-only toggle plus case-insensitive search on type/system."""
    needle = query.strip().lower()
    return [
        alert
        for alert in alerts
        if (alert.validated or not validated_only)
        and (
            not needle
            or needle in alert.type.lower()
            or needle in alert.affected_system.lower()
        )
    ]


class Dashboard:
    """
    Orchestrates refresh cycles over the feed clients and vendor poller.

    Attributes:
        snapshot: Most recent completed snapshot, None before the first.
    """

    def __init__(
        self,
        servicenow: ServiceNowClient,
        solarwinds: SolarWindsClient,
        poller: VendorStatusPoller,
        vendors: Sequence[VendorProbeSpec],
        settings: Optional[Settings] = None,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.servicenow = servicenow
        self.solarwinds = solarwinds
        self.poller = poller
        self.vendors = list(vendors)
        self.settings = settings or Settings()
        self.tz = tz or timezone.utc
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.snapshot: Optional[DashboardSnapshot] = None
        self._inflight: Optional[asyncio.Task] = None
        self._consecutive_errors = 0

    async def refresh(self) -> Optional[DashboardSnapshot]:
        """
        Run one cycle, cancelling any cycle still in flight.

        Returns the new snapshot, or None if this cycle was itself
        superseded by a later refresh before it finished.
        """
        if self._inflight is not None and not self._inflight.done():
            logger.debug("Cancelling stale refresh cycle")
            self._inflight.cancel()

        task = asyncio.ensure_future(self._collect())
        self._inflight = task
        try:
            snapshot = await task
        except asyncio.CancelledError:
            if task is not self._inflight:
                logger.debug("Refresh cycle superseded, results discarded")
                return None
            raise

        if task is not self._inflight:
            return None
        self.snapshot = snapshot
        return snapshot

    async def _collect(self) -> DashboardSnapshot:
        now = self._clock()
        vendors, active, history, tickets, alerts, changes = await asyncio.gather(
            self.poller.poll_all(self.vendors),
            guard("active outages", self.servicenow.active_outages),
            guard("outage history", self.servicenow.outage_history),
            guard("tickets", self.servicenow.tickets),
            guard("monitoring alerts", self.solarwinds.alerts),
            guard("scheduled changes", self.servicenow.changes),
        )

        if changes.items:
            changes.items = scheduled_changes(changes.items, active.items, now=now, tz=self.tz)

        outages: List[CanonicalOutage] = history.items
        return DashboardSnapshot(
            generated_at=now,
            vendors=vendors,
            active_outages=active,
            outage_history=history,
            tickets=tickets,
            alerts=alerts,
            changes=changes,
            trends_by_impact=aggregate(outages, GROUP_BY_IMPACT, now=now, tz=self.tz),
            trends_by_system=aggregate(outages, GROUP_BY_SYSTEM, now=now, tz=self.tz),
        )

    async def run(
        self,
        on_snapshot: Optional[Callable[[DashboardSnapshot], None]] = None,
        on_error: Optional[Callable[[Exception, int, float], None]] = None,
    ) -> None:
        """
        Refresh forever at ``settings.refresh_interval``. Runs until cancelled.

        Unexpected cycle failures back off exponentially with jitter.
        """
        while True:
            try:
                snapshot = await self.refresh()
                self._consecutive_errors = 0
                if snapshot is not None and on_snapshot is not None:
                    on_snapshot(snapshot)
                await asyncio.sleep(self.settings.refresh_interval)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                self._consecutive_errors += 1
                wait = self._backoff_delay()
                logger.exception("Refresh cycle failed")
                if on_error is not None:
                    on_error(exc, self._consecutive_errors, wait)
                await asyncio.sleep(wait)

    def _backoff_delay(self) -> float:
        """
        Calculate exponential backoff with jitter.

        delay = base * 2^(attempts-1) + random jitter
        Capped at the refresh interval.
        """
        exp = min(self._consecutive_errors, self.settings.max_retries)
        base_delay = self.settings.base_backoff * (2 ** (exp - 1))
        jitter = random.uniform(0, base_delay * 0.5)
        return min(base_delay + jitter, float(self.settings.refresh_interval))
