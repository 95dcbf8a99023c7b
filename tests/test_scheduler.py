"""Tests for the background flag repair job."""

import pytest
from sqlmodel import Session

from timebox.core import scheduler as scheduler_module
from timebox.core.config import settings
from timebox.models import Item


class TestFlagRepairJob:
    def test_job_repairs_drift(
        self, engine, session: Session, items: list[Item], monkeypatch: pytest.MonkeyPatch
    ):
        items[0].is_priority = True
        session.add(items[0])
        session.commit()
        monkeypatch.setattr(scheduler_module, "engine", engine)

        scheduler_module.reconcile_job()

        session.refresh(items[0])
        assert items[0].is_priority is False

    def test_job_logs_failures(self, monkeypatch: pytest.MonkeyPatch, caplog):
        def broken(session):
            raise RuntimeError("store offline")

        monkeypatch.setattr(scheduler_module, "reconcile_all", broken)

        scheduler_module.reconcile_job()

        assert "Flag repair failed: store offline" in caplog.text

    def test_disabled_interval(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings, "reconcile_interval_minutes", 0)

        scheduler_module.start_scheduler()

        assert scheduler_module.scheduler.get_job("flag_repair") is None

    def test_job_registered(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings, "reconcile_interval_minutes", 15)
        monkeypatch.setattr(scheduler_module.scheduler, "start", lambda: None)

        scheduler_module.start_scheduler()

        job = scheduler_module.scheduler.get_job("flag_repair")
        assert job is not None
        scheduler_module.scheduler.remove_job("flag_repair")
