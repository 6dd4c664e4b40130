from __future__ import annotations

import argparse
from pathlib import Path

from app.settings import Settings
from store.snapshot import ALL, filter_events, filter_options, load_snapshot


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", type=Path, default=None)
    parser.add_argument("--country", default=ALL)
    parser.add_argument("--category", default=ALL)
    parser.add_argument("--month", default=ALL, help="YYYY-MM")
    parser.add_argument("--options", action="store_true")
    args = parser.parse_args()

    path = args.file or Settings().events_path
    events = load_snapshot(path)

    if args.options:
        for name, values in filter_options(events).items():
            print(f"{name}: {', '.join(values) or '-'}")
        return

    matched = filter_events(
        events, country=args.country, category=args.category, month=args.month
    )
    if not matched:
        print("No events match the selected filters.")
        return
    for ev in matched:
        print(
            f"{ev.get('start') or '?':<25} {ev.get('country') or '-':<10} "
            f"{ev.get('city') or '-':<12} {ev.get('title')}"
        )


if __name__ == "__main__":
    main()
