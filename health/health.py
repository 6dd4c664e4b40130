from __future__ import annotations

from dataclasses import dataclass, field

from normalize.record import EventRecord


@dataclass(frozen=True)
class SourceOutcome:
    source_id: str
    ok: bool
    events: list[EventRecord] = field(default_factory=list)
    raw_count: int = 0
    error: str | None = None
    elapsed_ms: int | None = None

    @classmethod
    def success(
        cls,
        source_id: str,
        events: list[EventRecord],
        *,
        raw_count: int,
        elapsed_ms: int | None = None,
    ) -> SourceOutcome:
        return cls(
            source_id=source_id,
            ok=True,
            events=events,
            raw_count=raw_count,
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def failure(
        cls, source_id: str, error: str, *, elapsed_ms: int | None = None
    ) -> SourceOutcome:
        return cls(source_id=source_id, ok=False, error=error, elapsed_ms=elapsed_ms)


def describe_error(e: BaseException) -> str:
    message = str(e).strip()
    if message:
        return f"{e.__class__.__name__}: {message}"
    return e.__class__.__name__


def summarize_outcomes(outcomes: list[SourceOutcome]) -> dict[str, int]:
    return {
        "sources_run": len(outcomes),
        "sources_failed": sum(1 for o in outcomes if not o.ok),
        "raw_items": sum(o.raw_count for o in outcomes),
        "collected": sum(len(o.events) for o in outcomes),
    }
