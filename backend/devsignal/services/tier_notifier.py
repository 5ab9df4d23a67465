"""Notifications for accounts that move between score tiers."""

import logging
from typing import Any, Dict
from uuid import UUID

from devsignal.config import settings
from devsignal.models import ScoreTier

logger = logging.getLogger(__name__)

TIER_EMOJI = {
    ScoreTier.HOT.value: ":fire:",
    ScoreTier.WARM.value: ":sunny:",
    ScoreTier.COLD.value: ":snowflake:",
    ScoreTier.INACTIVE.value: ":zzz:",
}


def build_tier_change_message(account_name: str, old_tier: str, new_tier: str, score: int) -> Dict[str, Any]:
    return {
        "text": f"{account_name} moved from {old_tier} to {new_tier} (score {score})",
        "blocks": [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        f"{TIER_EMOJI.get(new_tier, '')} *{account_name}* moved from "
                        f"*{old_tier}* to *{new_tier}*\nPQA score: *{score}*"
                    ),
                },
            }
        ],
    }


def build_new_hot_account_message(account_name: str, score: int, account_id: UUID) -> Dict[str, Any]:
    return {
        "text": f"New HOT account: {account_name} (score {score})",
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"New HOT account: {account_name}"},
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"PQA score *{score}*. <{settings.APP_URL}/accounts/{account_id}|View account>",
                },
            },
        ],
    }


class TierChangeNotifier:
    """
    Sends in-app and Slack notices for tier transitions. Failures are
    logged and never propagate into scoring.
    """

    def __init__(self, notifications):
        self.notifications = notifications

    async def notify(
        self,
        organization_id: UUID,
        account_id: UUID,
        account_name: str,
        old_tier: str,
        new_tier: str,
        score: int
    ) -> None:
        if old_tier == new_tier:
            return

        entering_hot = new_tier == ScoreTier.HOT.value and old_tier != ScoreTier.HOT.value

        try:
            await self.notifications.notify_in_app(organization_id, {
                "type": "tier_change",
                "title": f"{account_name} is now {new_tier}",
                "body": f"Moved from {old_tier} to {new_tier} with a score of {score}.",
                "entity_type": "account",
                "entity_id": account_id,
            })
            if entering_hot:
                await self.notifications.notify_in_app(organization_id, {
                    "type": "new_hot_account",
                    "title": f"New HOT account: {account_name}",
                    "body": f"{account_name} reached a PQA score of {score}.",
                    "entity_type": "account",
                    "entity_id": account_id,
                })
        except Exception as e:
            logger.error(f"In-app tier notification failed for account {account_id}: {e}")

        try:
            webhook_url = await self.notifications.get_slack_webhook_url(organization_id)
            if not webhook_url:
                return
            await self.notifications.send_slack_message(
                webhook_url, build_tier_change_message(account_name, old_tier, new_tier, score)
            )
            if entering_hot:
                await self.notifications.send_slack_message(
                    webhook_url, build_new_hot_account_message(account_name, score, account_id)
                )
        except Exception as e:
            logger.error(f"Slack tier notification failed for account {account_id}: {e}")
