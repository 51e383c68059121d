"""
Feed clients for the ticketing/CMDB table API and the monitoring API.

Each client reads its integration config from the ConfigStore on every
call (so a saved config takes effect on the next cycle), resolves
credentials, fetches over the shared aiohttp session and hands raw
records to the RecordNormalizer. Transport problems are translated into
the engine's Upstream* errors; nothing external-shaped leaks out.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import aiohttp
from yarl import URL

from statusboard.config import ConfigStore
from statusboard.credentials import CredentialResolver, Credentials
from statusboard.errors import (
    ConfigurationMissing,
    CredentialsMissing,
    UpstreamMalformed,
    UpstreamRejected,
    UpstreamUnreachable,
)
from statusboard.models import (
    SERVICENOW,
    SOLARWINDS,
    CanonicalOutage,
    CanonicalTicket,
    ChangeRecord,
    IntegrationConfig,
    MonitoringAlert,
)
from statusboard.normalizer import ALERT, CHANGE, OUTAGE, TICKET, RecordNormalizer
from statusboard.query import (
    ActiveWindow,
    QueryBuilder,
    TodayWindow,
    TrailingWindow,
    build_alert_query,
)

logger = logging.getLogger(__name__)

_REDACTED = "[REDACTED]"
_LOG_BODY_LIMIT = 2000


def _sanitize(headers: Mapping[str, str]) -> Dict[str, str]:
    return {
        key: (_REDACTED if key.lower() == "authorization" else value)
        for key, value in headers.items()
    }


def _log_interaction(
    endpoint: str,
    method: str,
    url: str,
    request_headers: Mapping[str, str],
    status: int,
    reason: Optional[str],
    body: str,
) -> None:
    """Debug-log one API round trip with credentials redacted."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(
        "%s",
        json.dumps(
            {
                "type": "APICall",
                "endpoint": endpoint,
                "request": {"url": url, "method": method, "headers": _sanitize(request_headers)},
                "response": {"status": status, "reason": reason, "body": body[:_LOG_BODY_LIMIT]},
            },
            indent=2,
        ),
    )


class _BaseClient:
    kind = ""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        store: ConfigStore,
        credentials: CredentialResolver,
        normalizer: Optional[RecordNormalizer] = None,
        timeout: float = 15.0,
    ) -> None:
        self.session = session
        self.store = store
        self.credentials = credentials
        self.normalizer = normalizer or RecordNormalizer()
        self.timeout = timeout

    def _prepare(self) -> Tuple[IntegrationConfig, Credentials]:
        """Current config plus credentials, or ConfigurationMissing/CredentialsMissing."""
        config = self.store.get(self.kind)
        if not config.enabled or not config.instance_url:
            raise ConfigurationMissing(f"{self.kind} integration is not configured or enabled.")
        return config, self.credentials.require(config)

    async def _request(
        self,
        endpoint: str,
        method: str,
        url: str,
        creds: Credentials,
        result_key: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Send one request and return the list found under ``result_key``."""
        headers = {
            "Authorization": creds.basic_auth().encode(),
            "Accept": "application/json",
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"

        try:
            async with self.session.request(
                method,
                URL(url, encoded=True),
                headers=headers,
                data=None if payload is None else json.dumps(payload),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                body = await resp.text()
                _log_interaction(endpoint, method, url, headers, resp.status, resp.reason, body)
                status, reason = resp.status, resp.reason
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise UpstreamUnreachable(
                f"{endpoint}: {type(exc).__name__}: {exc}"
            ) from exc

        if status < 200 or status >= 300:
            logger.error("%s API error (%s): %s", endpoint, status, body[:_LOG_BODY_LIMIT])
            raise UpstreamRejected(f"{endpoint}: HTTP {status} {reason or ''}".strip(), status=status)

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise UpstreamMalformed(f"{endpoint}: response is not JSON", status=status) from exc

        records = data.get(result_key) if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise UpstreamMalformed(
                f"{endpoint}: response has no '{result_key}' list", status=status
            )
        return [r for r in records if isinstance(r, dict)]


class ServiceNowClient(_BaseClient):
    """Outages, tickets and changes from the table API."""

    kind = SERVICENOW

    def __init__(self, *args: Any, queries: Optional[QueryBuilder] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.queries = queries or QueryBuilder()

    async def _table(
        self, endpoint: str, config: IntegrationConfig, creds: Credentials, table: str, query: str
    ) -> List[Dict[str, Any]]:
        url = self.queries.table_url(config, table, query)
        return await self._request(endpoint, "GET", url, creds, result_key="result")

    async def active_outages(self) -> List[CanonicalOutage]:
        """
        Outages that are active and have no end time.

        A missing configuration or missing credentials is not an error
        here: the dashboard simply shows no active outages.
        """
        try:
            config, creds = self._prepare()
        except (ConfigurationMissing, CredentialsMissing) as exc:
            logger.info("Active outages skipped: %s", exc)
            return []

        query = self.queries.build(config, ActiveWindow())
        records = await self._table("ActiveOutages", config, creds, config.table, query)
        return self.normalizer.normalize_all(records, config, OUTAGE)

    async def outage_history(self, days: int = 7) -> List[CanonicalOutage]:
        """Outages that ended within the last ``days`` days."""
        config, creds = self._prepare()
        query = self.queries.build(config, TrailingWindow(days=days))
        records = await self._table("OutageHistory", config, creds, config.table, query)
        return self.normalizer.normalize_all(records, config, OUTAGE)

    async def tickets(self, limit: int = 20) -> List[CanonicalTicket]:
        """Open priority-1 tickets, most recently updated first."""
        config, creds = self._prepare()
        query = self.queries.build_tickets(config, limit=limit)
        records = await self._table("Tickets", config, creds, config.ticket_table, query)
        return self.normalizer.normalize_all(records, config, TICKET)

    async def changes(self) -> List[ChangeRecord]:
        """Change requests still open today (unfiltered by state)."""
        config, creds = self._prepare()
        query = self.queries.build_changes(config, TodayWindow())
        records = await self._table("Changes", config, creds, config.change_table, query)
        return self.normalizer.normalize_all(records, config, CHANGE)


class SolarWindsClient(_BaseClient):
    """Active alerts from the monitoring query API."""

    kind = SOLARWINDS

    QUERY_PATH = "/SolarWinds/InformationService/v3/Json/Query"

    async def alerts(self) -> List[MonitoringAlert]:
        config, creds = self._prepare()
        url = f"{config.instance_url}{self.QUERY_PATH}"
        records = await self._request(
            "MonitoringAlerts",
            "POST",
            url,
            creds,
            result_key="results",
            payload={"query": build_alert_query(config)},
        )
        return self.normalizer.normalize_all(records, config, ALERT)
