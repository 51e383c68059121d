"""
Console notifier: timestamped, colour-coded console output.

Renders dashboard snapshots (vendor verdicts, active outages, hot
changes, feed failures) as timestamped console lines, with ANSI colors
for readability.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from statusboard.dashboard import DashboardSnapshot, FeedResult
from statusboard.models import CanonicalOutage, ChangeRecord, TrendSeries

# ANSI color codes for terminal styling
_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[91m"
_GREEN = "\033[92m"
_YELLOW = "\033[93m"
_BLUE = "\033[94m"
_MAGENTA = "\033[95m"
_CYAN = "\033[96m"
_WHITE = "\033[97m"
_GRAY = "\033[90m"


def _status_color(status: str) -> str:
    """Pick a color based on a vendor verdict or impact level."""
    s = status.lower()
    if "operational" in s:
        return _GREEN
    elif "degrad" in s:
        return _YELLOW
    elif "outage" in s:
        return _RED
    else:
        return _MAGENTA


def _ts(moment: Optional[datetime] = None) -> str:
    return (moment or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S")


def print_banner() -> None:
    """Print the startup banner."""
    banner = f"""
{_BOLD}{_CYAN}+------------------------------------------------------------------+
|          StatusBoard -- Operations Dashboard Engine              |
|          Config-driven * Async * Isolated failures               |
+------------------------------------------------------------------+{_RESET}
"""
    print(banner)


def print_server_start(port: int, refresh_interval: int) -> None:
    """Print where the JSON API listens and how often it refreshes."""
    print(
        f"  {_BOLD}{_BLUE}> Serving:{_RESET} {_WHITE}http://0.0.0.0:{port}/api/dashboard{_RESET}"
        f"  {_DIM}[refresh every {refresh_interval}s]{_RESET}"
    )


def print_separator() -> None:
    """Print a visual separator line."""
    print(f"{_DIM}{'─' * 68}{_RESET}")


def print_outage(outage: CanonicalOutage) -> None:
    color = _status_color(outage.impact_level)
    print(
        f"    {color}{outage.impact_level:<12}{_RESET} "
        f"{_BOLD}{outage.system_name}{_RESET} {_DIM}({outage.id}){_RESET}"
    )
    description = (
        outage.description[:120] + "..."
        if len(outage.description) > 120
        else outage.description
    )
    print(f"      {_DIM}{description}{_RESET}")
    print(f"      {_DIM}since {_ts(outage.start_time)}  eta {_ts(outage.eta)}{_RESET}")
    if outage.bridge_url:
        print(f"      {_BOLD}Bridge :{_RESET} {_DIM}{outage.bridge_url}{_RESET}")


def print_change(change: ChangeRecord) -> None:
    tag = f"{_BOLD}{_RED}HOT{_RESET} " if change.is_hot else "    "
    start = change.start.strftime("%H:%M") if change.start else "-"
    end = change.end.strftime("%H:%M") if change.end else "-"
    print(
        f"    {tag}{change.number} {_BOLD}{change.summary}{_RESET}"
        f"  {_DIM}{start} - {end} - {change.type} ({change.state}){_RESET}"
    )


def print_feed_problem(feed: FeedResult) -> None:
    if not feed.configured:
        print(f"    {_YELLOW}Not configured:{_RESET} {_DIM}{feed.name}{_RESET}")
    elif feed.error:
        print(f"    {_RED}ERROR{_RESET} {_BOLD}{feed.name}:{_RESET} {feed.error}")


def print_trends(series: TrendSeries) -> None:
    print(f"  {_BOLD}Outage trends by {series.group_by}:{_RESET}")
    for bucket in series.buckets:
        parts = ", ".join(f"{key}={count}" for key, count in bucket.counts.items() if count)
        print(f"    {_GRAY}{bucket.label:<7}{_RESET} {parts or _DIM + '-' + _RESET}")


def print_snapshot(snapshot: DashboardSnapshot) -> None:
    """Print one full refresh result."""
    print_separator()
    print(f"  {_GRAY}[{_ts(snapshot.generated_at)}]{_RESET} {_BOLD}{_CYAN}DASHBOARD REFRESH{_RESET}")

    if snapshot.vendors:
        print(f"  {_BOLD}Vendors:{_RESET}")
        for vendor in snapshot.vendors:
            color = _status_color(vendor.status)
            print(f"    {color}{vendor.status:<12}{_RESET} {vendor.name}")

    outages = snapshot.active_outages.items
    print(f"  {_BOLD}Active outages:{_RESET} {len(outages)}")
    for outage in outages:
        print_outage(outage)

    hot = [c for c in snapshot.changes.items if c.is_hot]
    print(
        f"  {_BOLD}Changes today:{_RESET} {len(snapshot.changes.items)}"
        f"  {_RED if hot else _DIM}({len(hot)} hot){_RESET}"
    )
    for change in snapshot.changes.items:
        print_change(change)

    print(
        f"  {_BOLD}Tickets:{_RESET} {len(snapshot.tickets.items)}"
        f"  {_BOLD}Alerts:{_RESET} {len(snapshot.alerts.items)}"
    )
    if snapshot.outage_history.ok:
        print_trends(snapshot.trends_by_impact)

    problems = [feed for feed in snapshot.feeds if not feed.ok]
    for feed in problems:
        print_feed_problem(feed)
    print()


def print_error(source: str, message: str) -> None:
    """Print an error message."""
    print(
        f"  {_GRAY}[{_ts()}]{_RESET} {_RED}ERROR{_RESET} "
        f"{_BOLD}{source}:{_RESET} {message}"
    )


def print_retry(source: str, attempt: int, wait: float) -> None:
    """Print a retry message with backoff info."""
    print(
        f"  {_DIM}{source}: Retrying in {wait:.1f}s "
        f"(attempt {attempt})...{_RESET}"
    )


def print_shutdown() -> None:
    """Print shutdown message."""
    print(f"\n{_BOLD}{_CYAN}StatusBoard stopped. Goodbye!{_RESET}\n")
