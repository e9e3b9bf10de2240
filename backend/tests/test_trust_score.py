"""
Tests for the Trust Score Evaluator.

The database-side procedure is injected, so these run on SQLite.
"""

from types import SimpleNamespace

import pytest
from conftest import OTHER_USER_ID, USER_ID, create_profile

from core.errors import StorageError
from db.models import TrustScore
from trust.score import clamp_score, get_trust_score, initialize_trust_scores, run_trust_score_procedure


def fake_procedure(score=72.5, calls=None):
    async def procedure(db, user_id):
        if calls is not None:
            calls.append(user_id)
        db.add(TrustScore(user_id=user_id, trust_score=score))
        await db.commit()

    return procedure


class TestClamp:
    @pytest.mark.parametrize("raw,expected", [(None, 0.0), (-5, 0.0), (42.5, 42.5), (100, 100.0), (140, 100.0)])
    def test_clamp(self, raw, expected):
        assert clamp_score(raw) == expected


class TestGetTrustScore:
    @pytest.mark.asyncio
    async def test_lazy_initialization(self, test_db, profile):
        calls = []
        score = await get_trust_score(test_db, USER_ID, procedure=fake_procedure(calls=calls))
        assert score == 72.5
        assert calls == [USER_ID]

    @pytest.mark.asyncio
    async def test_existing_score_skips_procedure(self, test_db, profile):
        test_db.add(TrustScore(user_id=USER_ID, trust_score=55.0))
        await test_db.commit()
        calls = []
        assert await get_trust_score(test_db, USER_ID, procedure=fake_procedure(calls=calls)) == 55.0
        assert calls == []

    @pytest.mark.asyncio
    async def test_procedure_that_writes_nothing_reads_zero(self, test_db, profile):
        async def noop(db, user_id):
            return None

        assert await get_trust_score(test_db, USER_ID, procedure=noop) == 0.0

    @pytest.mark.asyncio
    async def test_missing_database_procedure_is_storage_error(self, test_db, profile):
        # SQLite has no such function
        with pytest.raises(StorageError):
            await get_trust_score(test_db, USER_ID)

    @pytest.mark.asyncio
    async def test_procedure_name_is_validated(self, test_db, monkeypatch):
        monkeypatch.setattr(
            "trust.score.get_settings",
            lambda: SimpleNamespace(trust_score_procedure="score(); DROP TABLE sales; --"),
        )
        with pytest.raises(ValueError):
            await run_trust_score_procedure(test_db, USER_ID)


class TestInitializeTrustScores:
    @pytest.mark.asyncio
    async def test_every_profile_initialized(self, test_db, profile):
        await create_profile(test_db, OTHER_USER_ID, "Other")
        calls = []
        summary = await initialize_trust_scores(test_db, procedure=fake_procedure(calls=calls))
        assert summary.total_profiles == 2
        assert summary.initialized == 2
        assert summary.errors == 0
        assert calls == [USER_ID, OTHER_USER_ID]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_batch(self, test_db, profile):
        await create_profile(test_db, OTHER_USER_ID, "Other")

        async def flaky(db, user_id):
            if user_id == USER_ID:
                raise StorageError("trust_score_procedure")

        summary = await initialize_trust_scores(test_db, procedure=flaky)
        assert summary.initialized == 1
        assert summary.errors == 1
