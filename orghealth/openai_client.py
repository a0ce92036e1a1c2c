"""OpenAI access for signal extraction.

The extractor only needs one call shape: send a system and user prompt, get
the reply text back. Credentials come from ``OPENAI_API_KEY`` (and optionally
``OPENAI_ORG``); the model defaults to ``config.OPENAI_MODEL``.
"""
from __future__ import annotations

import importlib
import os
import types
from typing import Any, Dict, List, Mapping, Optional

from orghealth import config


class OpenAIClientError(RuntimeError):
    """The OpenAI client cannot be configured (no API key)."""


def _load_openai() -> types.ModuleType:
    # resolved at call time so tests can swap the module in sys.modules
    return importlib.import_module("openai")


def get_openai_client() -> types.ModuleType:
    """Return the ``openai`` module with credentials applied."""

    openai = _load_openai()
    if getattr(openai, "api_key", None):
        return openai

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise OpenAIClientError("OPENAI_API_KEY environment variable is not set.")
    openai.api_key = api_key

    org = os.getenv("OPENAI_ORG")
    if org:
        openai.organization = org
    return openai


def chat_completion(
    messages: List[Dict[str, str]],
    *,
    model: Optional[str] = None,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Send *messages* and return ``{"choices": [...], "model": ...}`` as plain dicts.

    *timeout* is only forwarded when given; other keyword arguments go
    straight to ``chat.completions.create``.
    """

    openai = get_openai_client()
    if timeout is not None:
        kwargs["timeout"] = timeout

    completion = openai.chat.completions.create(
        model=model or config.OPENAI_MODEL, messages=messages, **kwargs
    )
    choices = [
        {"message": {"content": choice.message.content}} for choice in completion.choices
    ]
    return {"choices": choices, "model": completion.model}


def reply_text(response: Mapping[str, Any]) -> str:
    """First choice's message text, or ``""`` when the model sent nothing."""
    choices = response.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("message") or {}).get("content") or ""
