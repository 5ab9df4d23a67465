"""Loading and saving an organization's scoring configuration."""

import logging
from typing import Any, Dict
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.exceptions import InvalidScoringConfig
from devsignal.models import Organization
from devsignal.schemas.scoring import ScoringConfig, ScoringRuleConfig, TierThresholds
from devsignal.scoring.rules import MalformedRule, validate_rule
from devsignal.config import settings

logger = logging.getLogger(__name__)

SETTINGS_KEY = "scoringConfig"


def parse_stored_config(raw: Dict[str, Any]) -> ScoringConfig:
    """
    Lenient read of stored config: thresholds are clipped into order and
    rules that fail to parse are dropped with a warning.
    """
    raw = raw or {}
    raw_thresholds = raw.get("tierThresholds") or raw.get("tier_thresholds") or {}
    try:
        thresholds = TierThresholds.clipped(raw_thresholds)
    except (TypeError, ValueError):
        logger.warning(f"Unreadable tier thresholds {raw_thresholds}; using defaults")
        thresholds = TierThresholds()
    else:
        try:
            TierThresholds.model_validate(raw_thresholds)
        except ValidationError:
            logger.warning(f"Stored tier thresholds {raw_thresholds} out of order; clipped to {thresholds.model_dump()}")

    rules = []
    for index, raw_rule in enumerate(raw.get("rules") or []):
        try:
            rules.append(ScoringRuleConfig.model_validate(raw_rule))
        except ValidationError as e:
            logger.warning(f"Dropping unreadable scoring rule #{index}: {e.errors()[0].get('msg')}")

    max_score = raw.get("maxScore", raw.get("max_score", settings.DEFAULT_MAX_SCORE))
    try:
        max_score = int(max_score)
    except (TypeError, ValueError):
        max_score = settings.DEFAULT_MAX_SCORE
    if max_score <= 0:
        max_score = settings.DEFAULT_MAX_SCORE

    return ScoringConfig(rules=rules, tier_thresholds=thresholds, max_score=max_score)


def validate_proposed_config(raw: Dict[str, Any]) -> ScoringConfig:
    """
    Strict read of user-supplied config. Raises InvalidScoringConfig, also
    for rules the engine would skip (unknown decay, field or operator).
    """
    try:
        config = ScoringConfig.model_validate(raw)
    except ValidationError as e:
        raise InvalidScoringConfig(str(e)) from e

    for rule in config.rules:
        try:
            validate_rule(rule, settings.SCORING_DECAY_CURVE)
        except MalformedRule as e:
            raise InvalidScoringConfig(f"Scoring rule {rule.id} ({rule.name}): {e}") from e
    return config


class ScoringConfigService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, organization_id: UUID) -> ScoringConfig:
        org = await self.db.get(Organization, organization_id)
        if org is None:
            return ScoringConfig()
        return parse_stored_config((org.settings or {}).get(SETTINGS_KEY))

    async def save(self, organization_id: UUID, raw: Dict[str, Any]) -> ScoringConfig:
        config = validate_proposed_config(raw)
        org = await self.db.get(Organization, organization_id)
        if org is None:
            raise InvalidScoringConfig(f"Organization {organization_id} not found")

        org_settings = dict(org.settings or {})
        org_settings[SETTINGS_KEY] = config.model_dump(by_alias=True)
        org.settings = org_settings
        await self.db.commit()
        logger.info(f"Saved scoring config for org {organization_id} ({len(config.rules)} rules)")
        return config
