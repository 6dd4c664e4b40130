from __future__ import annotations

from types import MappingProxyType


COUNTRY_NAMES = MappingProxyType(
    {
        "SE": "Sweden",
        "NO": "Norway",
        "DK": "Denmark",
        "FI": "Finland",
        "IS": "Iceland",
        "IN": "India",
        "GB": "United Kingdom",
        "DE": "Germany",
    }
)


def country_name(code: str | None) -> str | None:
    if not code:
        return None
    normalized = str(code).strip().upper()
    if not normalized:
        return None
    return COUNTRY_NAMES.get(normalized, normalized)
