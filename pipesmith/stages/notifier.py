"""Notifier — posts pipeline results to Slack."""

from typing import Optional

from loguru import logger

from pipesmith.config import SlackSettings, settings
from pipesmith.tools.slack_tools import build_payload, parse_custom_fields, post_webhook
from pipesmith.utils.exceptions import ConfigurationError


def send_slack_notification(slack_settings: Optional[SlackSettings] = None, client=None) -> bool:
    """
    Send a Block Kit notification to SLACK_WEBHOOK_URL.

    Commit, branch, tag, author, build number and repository come from the
    Bitbucket pipeline variables.

    Raises:
        ConfigurationError: If SLACK_WEBHOOK_URL is missing or CUSTOM_FIELDS is invalid.
        NotificationError: If Slack rejects the message.
    """
    sl = slack_settings or SlackSettings()
    if not sl.SLACK_WEBHOOK_URL:
        raise ConfigurationError("SLACK_WEBHOOK_URL is required", "SLACK_WEBHOOK_URL")

    payload = build_payload(
        message=sl.MESSAGE,
        title=sl.TITLE,
        status=sl.STATUS,
        color=sl.NOTIFICATION_COLOR,
        mention_channel=sl.MENTION_CHANNEL,
        mention_users=sl.MENTION_USERS,
        commit=settings.BITBUCKET_COMMIT,
        branch=settings.BITBUCKET_BRANCH,
        tag=settings.BITBUCKET_TAG,
        author=settings.BITBUCKET_COMMIT_AUTHOR_DISPLAYNAME,
        build_number=settings.BITBUCKET_BUILD_NUMBER,
        repo_slug=settings.BITBUCKET_REPO_SLUG,
        workspace=settings.BITBUCKET_WORKSPACE,
        environment=sl.ENVIRONMENT,
        include_commit_info=sl.INCLUDE_COMMIT_INFO,
        include_build_info=sl.INCLUDE_BUILD_INFO,
        custom_fields=parse_custom_fields(sl.CUSTOM_FIELDS),
        thread_ts=sl.THREAD_TS,
    )
    logger.debug("Slack payload: {}", payload)

    logger.info("Sending notification to Slack...")
    post_webhook(sl.SLACK_WEBHOOK_URL, payload, client=client)
    logger.info("✓ Slack notification sent: {} ({})", sl.TITLE, sl.STATUS)
    return True
