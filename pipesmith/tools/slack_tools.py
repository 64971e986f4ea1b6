"""Slack tools — Block Kit payload construction and webhook delivery."""

import json
import time
from typing import Dict, List, Optional, Tuple

import httpx
from loguru import logger

from pipesmith.utils.exceptions import ConfigurationError, NotificationError


STATUS_STYLES: Dict[str, Tuple[str, str]] = {
    "success": ("good", "✅"),
    "warning": ("warning", "⚠️"),
    "error": ("danger", "❌"),
    "failure": ("danger", "❌"),
    "info": ("#439FE0", "ℹ️"),
}
DEFAULT_STYLE = ("#36a64f", "📢")


def status_style(status: str, color_override: Optional[str] = None) -> Tuple[str, str]:
    """(attachment color, header icon) for a pipeline status."""
    color, icon = STATUS_STYLES.get((status or "").lower(), DEFAULT_STYLE)
    return color_override or color, icon


def mention_text(channel: Optional[str], users: Optional[str]) -> str:
    """'<!channel> <@U1> ' style prefix for the notification text."""
    text = ""
    if channel == "channel":
        text = "<!channel> "
    elif channel == "here":
        text = "<!here> "
    for user in (users or "").split(","):
        user = user.strip()
        if user:
            text += f"<@{user}> "
    return text


def _field(label: str, value: str) -> dict:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}


def parse_custom_fields(raw: Optional[str]) -> List[Tuple[str, str]]:
    """
    Parse CUSTOM_FIELDS (a JSON object) into (key, value) pairs.

    Raises:
        ConfigurationError: If the value is not a JSON object.
    """
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError("CUSTOM_FIELDS must be a JSON object", "CUSTOM_FIELDS") from e
    if not isinstance(data, dict):
        raise ConfigurationError("CUSTOM_FIELDS must be a JSON object", "CUSTOM_FIELDS")
    return [(str(k), str(v)) for k, v in data.items() if k and v not in (None, "")]


def build_payload(
    message: str,
    title: str,
    status: str,
    color: Optional[str] = None,
    mention_channel: Optional[str] = None,
    mention_users: Optional[str] = None,
    commit: Optional[str] = None,
    branch: Optional[str] = None,
    tag: Optional[str] = None,
    author: Optional[str] = None,
    build_number: Optional[str] = None,
    repo_slug: Optional[str] = None,
    workspace: Optional[str] = None,
    environment: Optional[str] = None,
    include_commit_info: bool = True,
    include_build_info: bool = True,
    custom_fields: Optional[List[Tuple[str, str]]] = None,
    thread_ts: Optional[str] = None,
) -> dict:
    """
    Build the Slack Block Kit payload of a pipeline notification.

    The header carries the status icon and title, a section carries the
    message, and a fields section carries commit, build, environment and
    custom fields. A 'View Pipeline' button is added when the Bitbucket
    workspace, repository and build number are all known.
    """
    attachment_color, icon = status_style(status, color)
    commit = commit or "unknown"
    short_commit = commit[:7]

    commit_url = None
    if workspace and repo_slug and commit != "unknown":
        commit_url = f"https://bitbucket.org/{workspace}/{repo_slug}/commits/{commit}"
    build_url = None
    if workspace and repo_slug and build_number:
        build_url = f"https://bitbucket.org/{workspace}/{repo_slug}/pipelines/results/{build_number}"

    fields = []
    if include_commit_info:
        commit_text = f"<{commit_url}|`{short_commit}`>" if commit_url else f"`{short_commit}`"
        fields.append(_field("Commit", commit_text))
        fields.append(_field("Branch", branch or "unknown"))
        if tag:
            fields.append(_field("Tag", tag))
        fields.append(_field("Author", author or "Unknown"))
    if include_build_info:
        fields.append(_field("Build", f"#{build_number or 'unknown'}"))
        fields.append(_field("Repository", repo_slug or "unknown"))
    if environment:
        fields.append(_field("Environment", environment))
    for key, value in custom_fields or []:
        fields.append(_field(key, value))

    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": f"{icon} {title}"}},
        {"type": "section", "text": {"type": "mrkdwn", "text": message}},
    ]
    if fields:
        # Slack rejects a section with an empty fields list.
        blocks.append({"type": "section", "fields": fields})
    if build_url:
        blocks.append({
            "type": "actions",
            "elements": [{
                "type": "button",
                "text": {"type": "plain_text", "text": "View Pipeline"},
                "url": build_url,
            }],
        })

    payload = {
        "text": f"{mention_text(mention_channel, mention_users)}{icon} {message}",
        "blocks": blocks,
        "attachments": [{
            "color": attachment_color,
            "fallback": message,
            "footer": "Bitbucket Pipelines",
            "footer_icon": "https://bitbucket.org/favicon.ico",
            "ts": int(time.time()),
        }],
    }
    if thread_ts:
        payload["thread_ts"] = thread_ts
    return payload


def post_webhook(url: str, payload: dict, client: Optional[httpx.Client] = None) -> None:
    """
    POST a payload to a Slack incoming webhook.

    Raises:
        NotificationError: On a transport error or any non-200 response.
    """
    owns_client = client is None
    client = client or httpx.Client(timeout=30.0)
    try:
        response = client.post(url, json=payload)
    except httpx.HTTPError as e:
        raise NotificationError(f"Failed to send Slack notification: {e}") from e
    finally:
        if owns_client:
            client.close()

    if response.status_code != 200:
        logger.error("Slack responded {}: {}", response.status_code, response.text[:200])
        raise NotificationError("Failed to send Slack notification", status_code=response.status_code)
