from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

import scheduler
from scheduler import SchedulerManager, local_yesterday


class FakeLoader:
    days: list[date] = []
    fail = False

    def __init__(self, session) -> None:
        self.session = session

    async def load_missing_rates_for_day(self, day: date) -> list[str]:
        FakeLoader.days.append(day)
        if FakeLoader.fail:
            raise RuntimeError("provider down")
        return ["GBP"]


@asynccontextmanager
async def fake_session_scope():
    yield object()


@pytest.fixture
def fake_loader(monkeypatch):
    FakeLoader.days = []
    FakeLoader.fail = False
    monkeypatch.setattr(scheduler, "FxLoaderService", FakeLoader)
    monkeypatch.setattr(scheduler, "session_scope", fake_session_scope)
    return FakeLoader


def test_local_yesterday() -> None:
    expected = datetime.now(ZoneInfo("Asia/Tokyo")).date() - timedelta(days=1)
    assert local_yesterday("Asia/Tokyo") == expected


@pytest.mark.asyncio
async def test_run_job_loads_yesterday(fake_loader) -> None:
    manager = SchedulerManager()
    await manager._run_job("manual")
    assert fake_loader.days == [local_yesterday(manager.timezone)]


@pytest.mark.asyncio
async def test_run_job_logs_failures(fake_loader, caplog) -> None:
    fake_loader.fail = True
    manager = SchedulerManager()

    await manager._run_job("manual")
    assert "failed" in caplog.text


@pytest.mark.asyncio
async def test_start_registers_daily_and_hourly_jobs(fake_loader) -> None:
    manager = SchedulerManager()
    await manager.start()
    try:
        job_ids = {job.id for job in manager.scheduler.get_jobs()}
        assert job_ids == {"fx_rates_daily", "fx_rates_hourly_safety"}
        assert len(fake_loader.days) == 1
    finally:
        await manager.stop()
    assert manager.scheduler.running is False


@pytest.mark.asyncio
async def test_stop_without_start_is_a_no_op(fake_loader) -> None:
    manager = SchedulerManager()
    await manager.stop()
    assert manager.scheduler.running is False
    assert fake_loader.days == []
