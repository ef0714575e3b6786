"""Tests for the fire-and-forget sync error recorder."""
import logging
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest
from sqlalchemy.orm import Session

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import NOW, build_raw_match

from app.core.logging import DIAGNOSTICS_LOGGER_NAME
from app.repositories import MarketMatchRepository
from app.services.market.transformer import transform
from app.services.sync.error_recorder import SyncErrorRecorder


@pytest.fixture
def stored_match(db_session: Session):
    repo = MarketMatchRepository(db_session)
    return repo.upsert(transform(build_raw_match("e-1"), NOW))


class TestSyncErrorRecorder:

    @pytest.mark.asyncio
    async def test_record_is_scheduled_not_awaited(self, db_session: Session, session_factory, stored_match):
        recorder = SyncErrorRecorder(session_factory)

        recorder.record("e-1", "upstream payload rejected")

        assert recorder.pending == 1
        await recorder.drain()

        db_session.expire_all()
        row = MarketMatchRepository(db_session).get_by_match_id("e-1")
        assert row.sync_error_count == 1
        assert row.last_sync_error == "upstream payload rejected"

    def test_record_without_event_loop_writes_inline(self, db_session: Session, session_factory, stored_match):
        recorder = SyncErrorRecorder(session_factory)

        recorder.record("e-1", "boom")

        assert recorder.pending == 0
        db_session.expire_all()
        assert MarketMatchRepository(db_session).get_by_match_id("e-1").sync_error_count == 1

    @pytest.mark.asyncio
    async def test_write_failure_goes_to_diagnostics_log(self, caplog):
        broken = Mock()
        broken.query.side_effect = RuntimeError("database is locked")
        recorder = SyncErrorRecorder(lambda: broken)

        with caplog.at_level(logging.WARNING, logger=DIAGNOSTICS_LOGGER_NAME):
            recorder.record("e-1", "boom")
            await recorder.drain()

        records = [r for r in caplog.records if r.name == DIAGNOSTICS_LOGGER_NAME]
        assert len(records) == 1
        assert "e-1" in records[0].getMessage()
        broken.close.assert_called_once()
