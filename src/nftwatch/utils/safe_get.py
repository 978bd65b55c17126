"""
Safe Get Utility
================

Dot-path access into Reservoir API payloads.

Reservoir responses are deeply nested and most fields are optional
(``floorAsk.source``, ``token.collection.image``, ``price.amount.native``).
Instead of chained ``.get()`` calls:

    price = sale.get("price", {}).get("amount", {}).get("native")

use:

    price = safe_get(sale, "price.amount.native")
"""

from typing import Any, Optional


def safe_get(dct: Optional[dict], path: str, default: Any = None) -> Any:
    """
    Get a nested value from a dictionary using dot notation.

    Args:
        dct: Dictionary to traverse. Can be None.
        path: Dot-separated path, e.g. "token.collection.name"
        default: Returned when any segment is missing or not a dict.

    Examples:
        >>> order = {"source": {"name": "OpenSea", "icon": None}}
        >>> safe_get(order, "source.name")
        'OpenSea'
        >>> safe_get(order, "source.domain", default="unknown")
        'unknown'
        >>> safe_get(None, "source.name")
        None

    Notes:
        A present key holding None returns None, not ``default``.
    """
    if dct is None:
        return default

    if not path:
        return dct

    cur = dct
    for segment in path.split("."):
        if not isinstance(cur, dict):
            return default
        if segment not in cur:
            return default
        cur = cur[segment]

    return cur


def safe_get_float(dct: Optional[dict], path: str, default: Optional[float] = None) -> Optional[float]:
    """Safe get with float conversion; ``default`` when missing or not numeric."""
    val = safe_get(dct, path)
    if val is None:
        return default
    try:
        return float(val)
    except (TypeError, ValueError):
        return default


def safe_get_str(dct: Optional[dict], path: str) -> Optional[str]:
    """
    Safe get returning a non-empty string or None.

    Numbers are stringified (event ids arrive as ints on some endpoints);
    empty strings collapse to None so callers can treat "" as missing.
    """
    val = safe_get(dct, path)
    if val is None or isinstance(val, (dict, list)):
        return None
    text = str(val)
    return text if text else None
