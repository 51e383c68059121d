"""
Async Vendor Status Poller.

Probes every configured vendor health endpoint concurrently in a single
asyncio event loop. Each probe:
  - Skips the network entirely for MANUAL vendors (always Operational)
  - GETs the vendor's JSON status API with an identifying User-Agent
  - Resolves the configured JSON path in the response
  - Compares the value with the vendor's expected value

One vendor's failure never affects another: every probe converts its own
errors into a Degraded verdict, and the batch always returns one result
per vendor, in input order.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional, Sequence

import aiohttp

from statusboard.models import (
    DEGRADED,
    OPERATIONAL,
    OUTAGE,
    VendorProbeResult,
    VendorProbeSpec,
)
from statusboard.paths import resolve

logger = logging.getLogger(__name__)

USER_AGENT = "StatusBoard/1.0"


def stringify(value: Any) -> str:
    """
    Render a JSON value the way it is written in the vendor's payload.

    ``True`` -> ``"true"``, ``2.0`` -> ``"2"``, ``None`` -> ``"null"``.
    """
    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class VendorStatusPoller:
    """
    Probes vendor health endpoints over a shared aiohttp session.

    Attributes:
        session: Shared client session (connection pooling across probes).
        timeout: Per-probe total timeout in seconds.
    """

    def __init__(self, session: aiohttp.ClientSession, timeout: float = 15.0) -> None:
        self.session = session
        self.timeout = timeout

    async def poll_all(self, vendors: Sequence[VendorProbeSpec]) -> List[VendorProbeResult]:
        """Probe all vendors concurrently; one result per vendor, same order."""
        if not vendors:
            return []
        return list(await asyncio.gather(*(self.probe(v) for v in vendors)))

    async def probe(self, vendor: VendorProbeSpec) -> VendorProbeResult:
        if vendor.is_manual:
            status = OPERATIONAL
        else:
            try:
                status = await self._check(vendor)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "Failed to fetch status for %s: %s: %s",
                    vendor.name,
                    type(exc).__name__,
                    exc,
                )
                status = DEGRADED

        return VendorProbeResult(id=vendor.id, name=vendor.name, url=vendor.url, status=status)

    async def _check(self, vendor: VendorProbeSpec) -> str:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}

        async with self.session.get(
            vendor.api_url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            # Status page API itself is failing
            if resp.status < 200 or resp.status >= 300:
                logger.info("%s status API answered HTTP %s", vendor.name, resp.status)
                return DEGRADED
            body = await resp.json(content_type=None)

        return self.evaluate(body, vendor.json_path, vendor.expected_value)

    @staticmethod
    def evaluate(body: Any, json_path: Optional[str], expected: Optional[str]) -> str:
        """Verdict for an already-fetched status payload."""
        value = resolve(body, json_path)
        if value is None:
            return DEGRADED
        if stringify(value) == expected:
            return OPERATIONAL
        return OUTAGE
