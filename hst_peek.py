"""Lightweight utility to inspect .hst history files."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from hstpy.parser.errors import HstError
from hstpy.parser.hst_parse import HstReader

logger = logging.getLogger(__name__)


def _peek_file(path: Path) -> dict:
    entry: dict = {"path": str(path)}
    if not path.exists():
        entry["error"] = "not found"
        return entry

    try:
        with HstReader(str(path)) as reader:
            hdr = reader.header
            n, start, end = reader.peek_range()
    except (HstError, OSError) as exc:
        logger.warning("Cannot peek %s: %s", path, exc)
        entry["error"] = str(exc)
        return entry

    entry.update({
        "version": hdr.version,
        "symbol": hdr.symbol.rstrip("\x00"),
        "period": hdr.period,
        "count": n,
        "start": start,
        "end": end,
    })
    return entry


def _gather_paths(root: Path, pattern: Optional[str]) -> Sequence[Path]:
    if root.is_dir():
        glob = pattern or "*.hst"
        return sorted(root.glob(glob))
    return [root]


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Peek at .hst headers and timestamp ranges")
    parser.add_argument("path", help="Path to a .hst file or directory")
    parser.add_argument("--glob", help="Glob when --path is a directory")
    parser.add_argument("--json", action="store_true", help="Emit JSON output")
    args = parser.parse_args(argv)

    targets = _gather_paths(Path(args.path), args.glob)

    results: List[dict] = [_peek_file(path) for path in targets]

    if args.json:
        payload = results[0] if len(results) == 1 else results
        print(json.dumps(payload))
    else:
        for result in results:
            if "error" in result:
                print(f"{result['path']}: error={result['error']}")
            else:
                print(
                    f"{result['path']}: version={result['version']} symbol={result['symbol']} "
                    f"period={result['period']} count={result['count']} "
                    f"start={result['start']} end={result['end']}"
                )

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
