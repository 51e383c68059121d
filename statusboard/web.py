"""
JSON HTTP surface for the dashboard.

Thin aiohttp.web routes over the engine. Every response uses the envelope
``{"success": true, "data": ...}`` / ``{"success": false, "error": ...}``;
engine errors are mapped to status codes by a single middleware.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from aiohttp import web

from statusboard import __version__
from statusboard.changes import scheduled_changes
from statusboard.config import ConfigStore
from statusboard.dashboard import Dashboard, filter_alerts
from statusboard.errors import (
    ConfigurationMissing,
    CredentialsMissing,
    InvalidConfiguration,
    UpstreamError,
)
from statusboard.export import export_filename, outages_to_csv
from statusboard.models import INTEGRATION_KINDS, IntegrationConfig, to_jsonable
from statusboard.trends import GROUP_BY_CHOICES, GROUP_BY_IMPACT, aggregate

logger = logging.getLogger(__name__)

DASHBOARD = web.AppKey("dashboard", Dashboard)
CONFIG_STORE = web.AppKey("config_store", ConfigStore)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def ok(data: Any) -> web.Response:
    return web.json_response({"success": True, "data": to_jsonable(data)})


def bad(message: str, status: int = 400, **extra: Any) -> web.Response:
    return web.json_response({"success": False, "error": message, **extra}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Map engine errors to envelopes; report unexpected faults in full."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except (ConfigurationMissing, CredentialsMissing, InvalidConfiguration) as exc:
        return bad(str(exc))
    except UpstreamError as exc:
        return bad(f"Failed to fetch from upstream: {exc}", status=502)
    except Exception as exc:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return bad(
            "Internal Server Error",
            status=500,
            details=str(exc),
            stack=traceback.format_exc(),
        )


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# ─── Handlers ─────────────────────────────────────────────────


async def index(request: web.Request) -> web.Response:
    snapshot = request.app[DASHBOARD].snapshot
    return web.json_response({
        "status": "running",
        "version": __version__,
        "last_refresh": snapshot.generated_at.isoformat() if snapshot else None,
    })


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "healthy"})


async def dashboard_snapshot(request: web.Request) -> web.Response:
    dashboard = request.app[DASHBOARD]
    snapshot = dashboard.snapshot
    if snapshot is None or _truthy(request.query.get("refresh", "")):
        snapshot = await dashboard.refresh() or dashboard.snapshot
    if snapshot is None:
        return bad("Dashboard refresh was superseded, try again", status=503)
    return ok(snapshot)


async def vendor_status(request: web.Request) -> web.Response:
    dashboard = request.app[DASHBOARD]
    return ok(await dashboard.poller.poll_all(dashboard.vendors))


async def active_outages(request: web.Request) -> web.Response:
    return ok(await request.app[DASHBOARD].servicenow.active_outages())


async def outage_history(request: web.Request) -> web.Response:
    return ok(await request.app[DASHBOARD].servicenow.outage_history())


async def outage_history_csv(request: web.Request) -> web.Response:
    history = await request.app[DASHBOARD].servicenow.outage_history()
    filename = export_filename(datetime.now(timezone.utc))
    return web.Response(
        text=outages_to_csv(history),
        content_type="text/csv",
        charset="utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def outage_trends(request: web.Request) -> web.Response:
    group_by = request.query.get("group_by", GROUP_BY_IMPACT)
    if group_by not in GROUP_BY_CHOICES:
        return bad(f"group_by must be one of: {', '.join(GROUP_BY_CHOICES)}")
    dashboard = request.app[DASHBOARD]
    history = await dashboard.servicenow.outage_history()
    series = aggregate(history, group_by, tz=dashboard.tz)
    return ok({"group_by": series.group_by, "keys": series.keys, "rows": series.rows()})


async def tickets(request: web.Request) -> web.Response:
    return ok(await request.app[DASHBOARD].servicenow.tickets())


async def monitoring_alerts(request: web.Request) -> web.Response:
    alerts = await request.app[DASHBOARD].solarwinds.alerts()
    return ok(filter_alerts(
        alerts,
        validated_only=_truthy(request.query.get("validated", "")),
        query=request.query.get("q", ""),
    ))


async def changes_today(request: web.Request) -> web.Response:
    dashboard = request.app[DASHBOARD]
    changes, active = await asyncio.gather(
        dashboard.servicenow.changes(),
        dashboard.servicenow.active_outages(),
    )
    return ok(scheduled_changes(changes, active, tz=dashboard.tz))


def _kind(request: web.Request) -> str:
    kind = request.match_info["kind"]
    if kind not in INTEGRATION_KINDS:
        raise web.HTTPNotFound(
            text=f'{{"success": false, "error": "Unknown integration {kind}"}}',
            content_type="application/json",
        )
    return kind


async def get_config(request: web.Request) -> web.Response:
    return ok(request.app[CONFIG_STORE].get(_kind(request)))


async def save_config(request: web.Request) -> web.Response:
    kind = _kind(request)
    try:
        body = await request.json()
    except ValueError:
        return bad("Request body must be JSON")
    if not isinstance(body, dict):
        return bad("Request body must be a JSON object")
    try:
        config = IntegrationConfig.from_dict(kind, body)
    except TypeError as exc:
        raise InvalidConfiguration(str(exc)) from exc
    return ok(request.app[CONFIG_STORE].put(kind, config))


def create_app(dashboard: Dashboard, store: ConfigStore) -> web.Application:
    """Build the aiohttp application."""
    app = web.Application(middlewares=[error_middleware])
    app[DASHBOARD] = dashboard
    app[CONFIG_STORE] = store

    app.router.add_get("/", index)
    app.router.add_get("/health", health)
    app.router.add_get("/api/dashboard", dashboard_snapshot)
    app.router.add_get("/api/vendors/status", vendor_status)
    app.router.add_get("/api/outages/active", active_outages)
    app.router.add_get("/api/outages/history", outage_history)
    app.router.add_get("/api/outages/history.csv", outage_history_csv)
    app.router.add_get("/api/outages/trends", outage_trends)
    app.router.add_get("/api/servicenow/tickets", tickets)
    app.router.add_get("/api/monitoring/alerts", monitoring_alerts)
    app.router.add_get("/api/changes/today", changes_today)
    app.router.add_get("/api/config/{kind}", get_config)
    app.router.add_post("/api/config/{kind}", save_config)
    return app
