"""Command line BPM/key detection for local audio files."""

import argparse
import json
import logging
import sys

from redpine.analysis.engine import AnalysisEngine
from redpine.config import settings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Detect tempo (BPM) and musical key of audio files"
    )
    parser.add_argument("files", nargs="+", help="Audio files to analyze")
    parser.add_argument("--json", action="store_true", dest="json_output",
                        help="Print results as a JSON list")
    parser.add_argument("--sr", type=int, default=settings.sample_rate,
                        help=f"Decode sample rate, 0=native (default: {settings.sample_rate})")
    parser.add_argument("--timeout", type=float, default=settings.analysis_timeout_seconds,
                        help="Per-file analysis budget in seconds")
    parser.add_argument("--workers", type=int, default=settings.max_workers,
                        help=f"Files analyzed in parallel (default: {settings.max_workers})")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    engine = AnalysisEngine(
        timeout=args.timeout, max_workers=args.workers, sample_rate=args.sr or None
    )
    items = engine.analyze_files(args.files)

    if args.json_output:
        rows = [
            {
                "file": path,
                "bpm": item.result.bpm if item.result else None,
                "key": item.result.key if item.result else None,
                "error": item.error,
            }
            for path, item in zip(args.files, items)
        ]
        print(json.dumps(rows, indent=2))
    else:
        for path, item in zip(args.files, items):
            if item.ok:
                bpm = item.result.bpm if item.result.bpm is not None else "?"
                print(f"{path}: {bpm} BPM, {item.result.key or '?'}")
            else:
                print(f"{path}: error: {item.error}")

    return 0 if all(item.ok for item in items) else 1


if __name__ == "__main__":
    sys.exit(main())
