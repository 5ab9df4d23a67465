"""Alert delivery across in-app, email and Slack with per-channel isolation."""

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import ValidationError

from devsignal.schemas.alerts import AlertChannels, AlertConditions, EvaluationContext

logger = logging.getLogger(__name__)


@dataclass
class RuleView:
    """Detached copy of an AccountAlertRule; safe to use after rollbacks."""
    id: UUID
    name: str
    trigger_type: str
    conditions: Dict[str, Any]
    channels: Dict[str, Any]
    last_triggered_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, rule) -> "RuleView":
        return cls(
            id=rule.id,
            name=rule.name,
            trigger_type=rule.trigger_type,
            conditions=dict(rule.conditions or {}),
            channels=dict(rule.channels or {}),
            last_triggered_at=rule.last_triggered_at,
        )

    def parsed_conditions(self) -> AlertConditions:
        return AlertConditions.model_validate(self.conditions or {})

    def parsed_channels(self) -> AlertChannels:
        return AlertChannels.model_validate(self.channels or {})

    @property
    def trigger_label(self) -> str:
        return self.trigger_type.replace("_", " ")


def build_alert_email(rule: RuleView, ctx: EvaluationContext, reason: str) -> Dict[str, str]:
    name = html.escape(rule.name)
    account = html.escape(ctx.account_name)
    return {
        "subject": f"[DevSignal Alert] {rule.name} - {ctx.account_name}",
        "html": (
            f'<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
            f"<h2>Alert Triggered: {name}</h2>"
            f"<p><strong>Account:</strong> {account}</p>"
            f"<p><strong>Condition:</strong> {rule.trigger_label}</p>"
            f"<p><strong>Details:</strong> {html.escape(reason)}</p>"
            f"<p><strong>Current Score:</strong> {ctx.new_score}</p>"
            f"<p style=\"color: #6B7280; font-size: 12px;\">"
            f"This alert was triggered by the \"{name}\" rule. You can manage alert rules in Settings.</p>"
            f"</div>"
        ),
    }


def build_alert_slack_message(rule: RuleView, ctx: EvaluationContext, reason: str) -> Dict[str, Any]:
    message = {
        "text": f"Alert: {rule.name}: {ctx.account_name} - {reason}",
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"Alert: {rule.name}", "emoji": True},
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*{ctx.account_name}*\n{reason}"},
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Trigger:*\n{rule.trigger_label}"},
                    {"type": "mrkdwn", "text": f"*Score:*\n{ctx.new_score}"},
                ],
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"DevSignal Alert Rule | {datetime.now(timezone.utc).date().isoformat()}",
                    }
                ],
            },
        ],
    }
    slack_channel = (rule.channels or {}).get("slackChannel") or (rule.channels or {}).get("slack_channel")
    if slack_channel:
        message["channel"] = slack_channel
    return message


class AlertDispatcher:
    """
    Sends one fired alert to every enabled channel. A failing channel (or
    recipient) is logged with rule and account ids; the others still run.
    """

    def __init__(self, notifications):
        self.notifications = notifications

    async def dispatch(self, rule: RuleView, ctx: EvaluationContext, reason: str) -> Dict[str, Any]:
        outcome: Dict[str, Any] = {"in_app": None, "email_sent": 0, "email_failed": 0, "slack": None}
        try:
            channels = rule.parsed_channels()
        except ValidationError as e:
            logger.error(f"Unreadable channels for rule {rule.id}, account {ctx.account_id}: {e}")
            return outcome

        # 1. In-app, on unless explicitly disabled
        if channels.in_app:
            try:
                await self.notifications.notify_in_app(ctx.organization_id, {
                    "type": "account_alert",
                    "title": f"Alert: {rule.name}",
                    "body": f"{ctx.account_name} - {reason}",
                    "entity_type": "company",
                    "entity_id": ctx.account_id,
                })
                outcome["in_app"] = True
            except Exception as e:
                outcome["in_app"] = False
                logger.error(f"In-app alert failed for rule {rule.id}, account {ctx.account_id}: {e}")

        # 2. Email, each recipient independently
        if channels.email:
            try:
                members = await self.notifications.list_members(ctx.organization_id)
            except Exception as e:
                members = []
                logger.error(f"Could not load alert recipients for rule {rule.id}, account {ctx.account_id}: {e}")

            email = build_alert_email(rule, ctx, reason)
            for address in [m.email for m in members if m.email]:
                try:
                    await self.notifications.send_email(address, email["subject"], email["html"])
                    outcome["email_sent"] += 1
                except Exception as e:
                    outcome["email_failed"] += 1
                    logger.error(
                        f"Alert email to {address} failed for rule {rule.id}, account {ctx.account_id}: {e}"
                    )

        # 3. Slack, only when the organization has a webhook
        if channels.slack:
            try:
                webhook_url = await self.notifications.get_slack_webhook_url(ctx.organization_id)
                if webhook_url:
                    await self.notifications.send_slack_message(
                        webhook_url, build_alert_slack_message(rule, ctx, reason)
                    )
                    outcome["slack"] = True
            except Exception as e:
                outcome["slack"] = False
                logger.error(f"Slack alert failed for rule {rule.id}, account {ctx.account_id}: {e}")

        return outcome
