"""Render health reports using Jinja2 templates and deliver them to Slack."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader
from slack_sdk.errors import SlackApiError

from orghealth import config
from orghealth.pipeline import AnalysisResult
from orghealth.reporting.context import build_report_context

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).parent / "templates"

# Markdown/slack templates don’t need HTML escaping – it breaks apostrophes etc.
_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_report(result: AnalysisResult, *, date: Optional[str] = None) -> str:
    """Render a Slack-friendly markdown report from an ``AnalysisResult``."""

    context = build_report_context(result, date=date)
    template = _env.get_template("report.md.j2")
    return template.render(**context.to_dict())


def post_report_to_slack(*, result: AnalysisResult, client, channel: str) -> bool:
    """Send the report to Slack *channel* using *client* (``WebClient``).

    Returns *False* (after logging) when Slack rejects a call.
    """

    try:
        parent_resp = client.chat_postMessage(
            channel=channel,
            text=f"*Organisational Health Report for '{result.survey_id}'*",
        )
        parent_ts = parent_resp["ts"]

        report_text = render_report(result)
        report_len = len(report_text)
        logger.debug(
            "Report generated for survey=%s channel=%s len=%d",
            result.survey_id,
            channel,
            report_len,
        )

        if report_len < config.SLACK_MESSAGE_LIMIT:
            logger.debug("Posting report as chat message (len=%d)", report_len)
            client.chat_postMessage(channel=channel, text=report_text, thread_ts=parent_ts)
        else:
            logger.debug("Uploading report as file (len=%d) via files_upload_v2", report_len)
            client.files_upload_v2(
                channel=channel,
                title=f"Health Report {result.survey_id}",
                content=report_text,
                filename=f"health_{result.survey_id}.md",
                thread_ts=parent_ts,
            )
    except SlackApiError as exc:
        logger.error(
            "Slack API error posting report for survey %s: %s",
            result.survey_id,
            exc.response.get("error", exc),
        )
        return False

    logger.info("Posted report for survey %s to %s", result.survey_id, channel)
    return True
