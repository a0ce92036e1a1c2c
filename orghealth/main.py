"""Command-line bootstrap for the health scoring engine.

Reads a JSON batch (records, profiles, theme names and optional precomputed
signals), runs one analysis and prints JSON or a Markdown report; optionally
posts the report to Slack. Keeping the runtime bootstrap here lets the rest of
the package be imported by tests and tooling without side-effects.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from slack_sdk import WebClient

from orghealth import config
from orghealth.analysis.extractor import OpenAISignalExtractor, StaticSignalExtractor
from orghealth.pipeline import HealthEngine, build_request
from orghealth.reporting.render import post_report_to_slack, render_report

logger = logging.getLogger("orghealth")


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="orghealth",
        description="Score organisational health from a batch of themed feedback.",
    )
    parser.add_argument("batch", help="Path to a JSON batch file ('-' for stdin)")
    parser.add_argument(
        "--format",
        choices=("json", "markdown"),
        default="json",
        help="Output format written to stdout (default: json)",
    )
    parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Do not call OpenAI; use the batch's precomputed signals or fallback insights",
    )
    parser.add_argument(
        "--slack-channel",
        help="Also post the report to this Slack channel (needs SLACK_BOT_TOKEN)",
    )
    return parser.parse_args(argv)


def _load_batch(path: str):
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=config.LOG_LEVEL,
    )
    args = _parse_args(argv)

    try:
        payload = _load_batch(args.batch)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read batch %s: %s", args.batch, exc)
        return 1

    request = build_request(payload)

    signals = payload.get("signals") if isinstance(payload, dict) else None
    if signals:
        extractor = StaticSignalExtractor(signals)
    elif args.no_ai:
        extractor = None
    else:
        extractor = OpenAISignalExtractor(
            timeout=config.EXTRACT_TIMEOUT_SECONDS, theme_names=request.theme_names
        )

    with HealthEngine(extractor) as engine:
        result = engine.analyze(request)

    if args.format == "markdown":
        sys.stdout.write(render_report(result))
    else:
        sys.stdout.write(result.to_json())
    sys.stdout.write("\n")

    if args.slack_channel:
        token = os.getenv("SLACK_BOT_TOKEN")
        if not token:
            logger.error("SLACK_BOT_TOKEN is required to post to Slack.")
            return 1
        if not post_report_to_slack(
            result=result, client=WebClient(token=token), channel=args.slack_channel
        ):
            return 1

    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
