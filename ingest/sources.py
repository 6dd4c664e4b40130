from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml


SOURCE_TYPES = ("feed", "api", "scrape")
_TYPE_ALIASES = {"rss": "feed", "atom": "feed", "json": "api", "html": "scrape"}
AUTH_TYPES = ("apikey", "bearer")


class SourceConfigError(ValueError):
    pass


class MissingCredentialError(SourceConfigError):
    pass


@dataclass(frozen=True)
class SourceAuth:
    auth_type: str
    env_var: str
    header_name: str = "Authorization"


@dataclass(frozen=True)
class SourceDescriptor:
    source_id: str
    source_type: str
    url: str
    country: str | None = None
    region: str | None = None
    selectors: dict[str, str] = field(default_factory=dict)
    transform: str | None = None
    auth: SourceAuth | None = None
    params: dict[str, str] = field(default_factory=dict)
    result_path: str | None = None
    category: str | None = None
    timezone: str = "UTC"
    enabled: bool = True


def _parse_auth(source_id: str, raw: object) -> SourceAuth | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise SourceConfigError(f"source {source_id}: auth must be a mapping")
    auth_type = str(raw.get("type") or "apikey").strip().lower()
    if auth_type not in AUTH_TYPES:
        raise SourceConfigError(f"source {source_id}: unknown auth type {auth_type!r}")
    env_var = str(raw.get("env_var") or raw.get("envVar") or "").strip()
    if not env_var:
        raise SourceConfigError(f"source {source_id}: auth.env_var is required")
    header_name = str(
        raw.get("header_name") or raw.get("headerName") or "Authorization"
    ).strip()
    return SourceAuth(auth_type=auth_type, env_var=env_var, header_name=header_name)


def _string_map(source_id: str, key: str, raw: object) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SourceConfigError(f"source {source_id}: {key} must be a mapping")
    return {str(k): str(v) for k, v in raw.items()}


def parse_source(entry: object, known_transforms: set[str] | None = None) -> SourceDescriptor:
    if not isinstance(entry, dict):
        raise SourceConfigError(f"invalid source entry: {entry!r}")

    source_id = str(entry.get("id") or "").strip()
    if not source_id:
        raise SourceConfigError(f"source entry without id: {entry!r}")
    url = str(entry.get("url") or "").strip()
    if not url:
        raise SourceConfigError(f"source {source_id}: url is required")

    source_type = str(entry.get("type") or "").strip().lower()
    source_type = _TYPE_ALIASES.get(source_type, source_type)
    if source_type not in SOURCE_TYPES:
        raise SourceConfigError(
            f"source {source_id}: unknown type {entry.get('type')!r}"
        )

    selectors = _string_map(source_id, "selectors", entry.get("selectors"))
    if source_type == "scrape" and not selectors.get("item"):
        raise SourceConfigError(f"source {source_id}: selectors.item is required")

    transform = entry.get("transform")
    if transform is not None:
        transform = Path(str(transform)).stem.strip()
        if known_transforms is not None and transform not in known_transforms:
            raise SourceConfigError(
                f"source {source_id}: unknown transform {transform!r}"
            )

    tz_name = str(entry.get("timezone") or "UTC")
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise SourceConfigError(
            f"source {source_id}: unknown timezone {tz_name!r}"
        ) from e

    country = entry.get("country")
    region = entry.get("region")
    category = entry.get("category")
    result_path = entry.get("result_path") or entry.get("resultPath")

    return SourceDescriptor(
        source_id=source_id,
        source_type=source_type,
        url=url,
        country=str(country).strip().upper() if country else None,
        region=str(region).strip() if region else None,
        selectors=selectors,
        transform=transform or None,
        auth=_parse_auth(source_id, entry.get("auth")),
        params=_string_map(source_id, "params", entry.get("params")),
        result_path=str(result_path) if result_path else None,
        category=str(category) if category else None,
        timezone=tz_name,
        enabled=bool(entry.get("enabled", True)),
    )


def load_sources(
    path: Path, known_transforms: set[str] | None = None
) -> list[SourceDescriptor]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SourceConfigError(f"cannot read {path}: {e}") from e
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SourceConfigError(f"invalid source config {path}: {e}") from e

    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = raw.get("sources")
        if raw is None:
            return []
    if not isinstance(raw, list):
        raise SourceConfigError(f"invalid source config: {path}")

    sources: list[SourceDescriptor] = []
    seen: set[str] = set()
    for entry in raw:
        source = parse_source(entry, known_transforms)
        if source.source_id in seen:
            raise SourceConfigError(f"duplicate source id: {source.source_id}")
        seen.add(source.source_id)
        sources.append(source)
    return sources


def require_credentials(
    sources: list[SourceDescriptor], environ: Mapping[str, str] | None = None
) -> None:
    env = os.environ if environ is None else environ
    missing = [
        f"{s.source_id} ({s.auth.env_var})"
        for s in sources
        if s.enabled
        and s.source_type == "api"
        and s.auth is not None
        and not (env.get(s.auth.env_var) or "").strip()
    ]
    if missing:
        raise MissingCredentialError(
            f"missing API credentials for: {', '.join(missing)}"
        )
