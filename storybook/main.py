"""Command-line entry point: two video files in, story JSON out."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import LOG_FILE


def _setup_logging(verbose: bool = False) -> None:
    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    if verbose:
        logging.basicConfig(stream=sys.stderr, level=logging.DEBUG, format=fmt)
        return
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(filename=str(LOG_FILE), level=logging.DEBUG, format=fmt)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storybook",
        description="Turn a subject clip and a narrated clip into an illustrated story.",
    )
    parser.add_argument("--subject", type=Path, required=True, help="Video showing the main character")
    parser.add_argument("--narrative", type=Path, required=True, help="Video of the narrated plot")
    parser.add_argument("--snapshot", type=Path, default=None, help="Optional pre-captured still of the character")
    parser.add_argument("--output", type=Path, default=None, help="Write the story JSON here instead of stdout")
    parser.add_argument("--timeout", type=float, default=None, help="Abandon the request after this many seconds")
    parser.add_argument("--verbose", action="store_true", help="Log to stderr at debug level")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    from .assets import StillImage, VideoAsset
    from .config import Config
    from .errors import StorybookError
    from .pipeline import run_story

    for label, path in (("subject", args.subject), ("narrative", args.narrative), ("snapshot", args.snapshot)):
        if path is not None and not path.exists():
            print(f"Error: {label} file not found: {path}", file=sys.stderr)
            return 1

    def progress(msg: str) -> None:
        print(msg, file=sys.stderr)

    try:
        story = run_story(
            VideoAsset.from_path(args.subject, "subject"),
            VideoAsset.from_path(args.narrative, "narrative"),
            StillImage.from_path(args.snapshot) if args.snapshot else None,
            config=Config.load(),
            progress_cb=progress,
            timeout=args.timeout,
        )
    except StorybookError as e:
        print(f"Error ({e.kind}): {e}", file=sys.stderr)
        return 1
    except asyncio.TimeoutError:
        print(f"Error: story generation exceeded {args.timeout:.0f}s", file=sys.stderr)
        return 1

    payload = story.to_json()
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload, encoding="utf-8")
        print(f"\n✅ Story saved to {args.output}", file=sys.stderr)
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
