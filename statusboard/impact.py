"""
Impact / severity vocabulary translation.

Maps an external token (``"outage"``, ``"2"``, ``" Degradation "``) to a
canonical value via an ordered, user-editable table.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from statusboard.models import ImpactMapping


def _normalize_token(raw: Any) -> str:
    return str(raw).strip().lower()


def build_index(mapping: Iterable[ImpactMapping]) -> Dict[str, str]:
    """
    Build the case-insensitive lookup for ``mapping``.

    On duplicate external values the first entry wins; later ones are
    shadowed.
    """
    index: Dict[str, str] = {}
    for item in mapping:
        key = _normalize_token(item.external_value)
        if key not in index:
            index[key] = item.canonical_value
    return index


def translate(raw: Any, mapping: Iterable[ImpactMapping], default: str) -> str:
    """
    Translate an external impact token to its canonical value.

    Args:
        raw: External token, may be None or a non-string (e.g. 2).
        mapping: Ordered impact table.
        default: Returned when ``raw`` is null/empty or unmapped.
    """
    if raw is None:
        return default
    token = _normalize_token(raw)
    if not token:
        return default
    return build_index(mapping).get(token, default)


def external_tokens_for(mapping: Iterable[ImpactMapping], canonical: Iterable[str]) -> List[str]:
    """
    External values that translate into any of ``canonical``.

    Used to build ``IN`` filters; order follows the table, duplicates
    (case-insensitive) are dropped and shadowed entries are skipped.
    """
    wanted = set(canonical)
    tokens: List[str] = []
    for key, value in build_index(mapping).items():
        if value in wanted:
            tokens.append(key)
    return tokens


def first_unknown(mapping: Iterable[ImpactMapping], vocabulary: Iterable[str]) -> Optional[ImpactMapping]:
    """Return the first row whose canonical value is outside ``vocabulary``."""
    allowed = set(vocabulary)
    for item in mapping:
        if item.canonical_value not in allowed:
            return item
    return None
