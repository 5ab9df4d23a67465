# tests/test_scheduler.py
"""Tests for the periodic jobs and their registration."""

from unittest.mock import patch

import pytest
from sqlalchemy import select

from devsignal import scheduler as jobs
from devsignal.models import AccountScore
from tests.factories import days_ago, make_company, make_org, make_rule, make_signal, make_source


class TestJobs:

    @pytest.mark.asyncio
    async def test_time_based_sweep_across_orgs(self, db, session_factory, now):
        org = await make_org(db)
        idle = await make_org(db, name="No rules")
        source = await make_source(db, org)
        company = await make_company(db, org)
        await make_company(db, idle)
        await make_signal(db, org, source, company, timestamp=days_ago(now, 40))
        db.add(AccountScore(organization_id=org.id, account_id=company.id, score=5, tier="INACTIVE", trend="STABLE"))
        await db.commit()
        await make_rule(db, org, "account_inactive", conditions={"inactiveDays": 14})

        with patch.object(jobs, "AsyncSessionLocal", session_factory):
            totals = await jobs.run_time_based_alerts()

        assert totals.evaluated == 1
        assert totals.triggered == 1

    @pytest.mark.asyncio
    async def test_score_sweep(self, db, session_factory, now):
        org = await make_org(db)
        source = await make_source(db, org)
        company = await make_company(db, org)
        await make_signal(db, org, source, company, timestamp=days_ago(now, 1))

        with patch.object(jobs, "AsyncSessionLocal", session_factory):
            await jobs.run_score_sweep()

        async with session_factory() as check:
            result = await check.execute(select(AccountScore).where(AccountScore.account_id == company.id))
            score = result.scalar_one()
        assert score.tier == "INACTIVE"
        assert score.signal_count == 1

    @pytest.mark.asyncio
    async def test_source_sync_without_sources(self, session_factory):
        with patch.object(jobs, "AsyncSessionLocal", session_factory):
            await jobs.run_source_sync()


def test_start_registers_jobs():
    with patch.object(jobs.scheduler, "start") as start:
        jobs.start_scheduler()

    assert {job.id for job in jobs.scheduler.get_jobs()} == {"time_based_alerts", "score_sweep", "source_sync"}
    start.assert_called_once()
    for job in jobs.scheduler.get_jobs():
        jobs.scheduler.remove_job(job.id)
