"""
Main entry point: wires the StatusBoard services together.

Wires the config store, credential resolver, feed clients and vendor
poller around one shared aiohttp session, serves the JSON API, and keeps
the dashboard refreshed on an interval until Ctrl+C.

Usage:
    statusboard [path/to/config.yaml]
    python -m statusboard.main
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

import aiohttp
from aiohttp import web

from statusboard import notifier
from statusboard.clients import ServiceNowClient, SolarWindsClient
from statusboard.config import ConfigStore, load_config
from statusboard.credentials import CredentialResolver, EnvCredentialResolver
from statusboard.dashboard import Dashboard
from statusboard.dates import DateNormalizer, resolve_timezone
from statusboard.models import Settings, VendorProbeSpec
from statusboard.normalizer import RecordNormalizer
from statusboard.query import QueryBuilder
from statusboard.vendors import VendorStatusPoller
from statusboard.web import create_app

logger = logging.getLogger(__name__)


class StatusBoard:
    """
    Top-level orchestrator.

    Manages the shared aiohttp session, the dashboard refresh loop and
    the web server lifecycle.
    """

    def __init__(
        self,
        settings: Settings,
        vendors: List[VendorProbeSpec],
        store: ConfigStore,
        credentials: Optional[CredentialResolver] = None,
    ) -> None:
        self.settings = settings
        self.vendors = vendors
        self.store = store
        self.credentials = credentials or EnvCredentialResolver()
        self._tasks: List[asyncio.Task] = []

    def build_dashboard(self, session: aiohttp.ClientSession) -> Dashboard:
        tz = resolve_timezone(self.settings.timezone)
        normalizer = RecordNormalizer(
            DateNormalizer(default_tz=tz, policy=self.settings.date_fallback)
        )
        common = dict(
            normalizer=normalizer,
            timeout=self.settings.request_timeout,
        )
        return Dashboard(
            servicenow=ServiceNowClient(
                session, self.store, self.credentials, queries=QueryBuilder(tz=tz), **common
            ),
            solarwinds=SolarWindsClient(session, self.store, self.credentials, **common),
            poller=VendorStatusPoller(session, timeout=self.settings.request_timeout),
            vendors=self.vendors,
            settings=self.settings,
            tz=tz,
        )

    async def run(self) -> None:
        """
        Serve the API and refresh the dashboard until interrupted.
        """
        notifier.print_banner()

        # One pooled session for every feed and vendor probe
        connector = aiohttp.TCPConnector(limit_per_host=5)
        async with aiohttp.ClientSession(connector=connector) as session:
            dashboard = self.build_dashboard(session)

            runner = web.AppRunner(create_app(dashboard, self.store))
            await runner.setup()
            site = web.TCPSite(runner, "0.0.0.0", self.settings.port)
            await site.start()
            notifier.print_server_start(self.settings.port, self.settings.refresh_interval)

            task = asyncio.create_task(
                dashboard.run(
                    on_snapshot=notifier.print_snapshot,
                    on_error=self._report_error,
                ),
                name="dashboard-refresh",
            )
            self._tasks.append(task)

            try:
                await asyncio.gather(*self._tasks)
            except asyncio.CancelledError:
                pass
            finally:
                await runner.cleanup()

    @staticmethod
    def _report_error(exc: Exception, attempt: int, wait: float) -> None:
        notifier.print_error("refresh", str(exc))
        notifier.print_retry("refresh", attempt, wait)

    def shutdown(self) -> None:
        """Cancel the refresh loop."""
        for task in self._tasks:
            task.cancel()


def _handle_signals(board: StatusBoard, loop: asyncio.AbstractEventLoop) -> None:
    """Register signal handlers for graceful shutdown."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(
                sig,
                lambda: _do_shutdown(board),
            )
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def _do_shutdown(board: StatusBoard) -> None:
    """Trigger graceful shutdown."""
    notifier.print_shutdown()
    board.shutdown()


async def async_main(config_path: Optional[str] = None) -> None:
    """Async entry point."""
    settings, vendors, seeds = load_config(config_path)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    # Port may be overridden by the hosting platform
    settings.port = int(os.environ.get("PORT", settings.port))
    state_path = os.environ.get("STATUSBOARD_STATE")
    store = ConfigStore(path=Path(state_path) if state_path else None, seeds=seeds)

    board = StatusBoard(settings, vendors, store)
    loop = asyncio.get_running_loop()
    _handle_signals(board, loop)

    await board.run()


def main() -> None:
    """Sync entry point."""
    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        asyncio.run(async_main(config_path))
    except KeyboardInterrupt:
        # Signal handler already printed shutdown message
        sys.exit(0)


if __name__ == "__main__":
    main()
