"""Tests for the backup GC command line."""

import argparse
import logging
import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from backup_gc.cli.gc import _settings, main
from backup_gc.database import create_engine_for_url, create_session_factory
from backup_gc.models import Backup, DeleteBackupRequestRow


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Commands reconfigure the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'gc.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    return url


@pytest.fixture
def seeded(db_url):
    main(["--plain-logs", "init-db"])
    now = datetime.now(UTC)
    session_factory = create_session_factory(create_engine_for_url(db_url))
    with session_factory() as session:
        session.add(Backup(id=uuid.uuid4(), namespace="velero", name="old", uid="uid-old", expiration=now - timedelta(days=2)))
        session.add(Backup(id=uuid.uuid4(), namespace="velero", name="new", uid="uid-new", expiration=now + timedelta(days=2)))
        session.commit()
    return session_factory


def _requests(session_factory):
    with session_factory() as session:
        return session.scalars(select(DeleteBackupRequestRow)).all()


class TestScan:
    def test_requires_confirm(self, seeded, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--plain-logs", "scan"])

        assert exc_info.value.code == 1
        assert "--confirm" in capsys.readouterr().out

    def test_dry_run_creates_nothing(self, seeded, capsys):
        main(["--plain-logs", "scan", "--dry-run"])

        out = capsys.readouterr().out
        assert "DRY RUN" in out
        assert "Checked: 2" in out
        assert "Expired: 1" in out
        assert _requests(seeded) == []

    def test_confirm_creates_request_for_expired_backup(self, seeded, capsys):
        main(["--plain-logs", "scan", "--confirm"])

        rows = _requests(seeded)
        assert [r.backup_uid for r in rows] == ["uid-old"]
        assert "Delete requests created: 1" in capsys.readouterr().out


class TestStatus:
    def test_counts(self, seeded, capsys):
        main(["--plain-logs", "status"])

        out = capsys.readouterr().out
        assert "Total backups: 2" in out
        assert "Expired now: 1" in out
        assert "Pending delete requests: 0" in out


class TestOverrides:
    """Command-line overrides go through the same validation as environment settings."""

    def test_negative_workers_rejected(self, db_url, capsys):
        with pytest.raises(SystemExit) as exc_info:
            _settings(argparse.Namespace(workers=-3, sync_period=None, dry_run_client=False))

        assert exc_info.value.code == 1
        assert "GC_WORKERS" in capsys.readouterr().out

    def test_run_with_zero_workers_exits_before_starting(self, db_url):
        with pytest.raises(SystemExit) as exc_info:
            main(["--plain-logs", "run", "--workers", "0"])

        assert exc_info.value.code == 1

    def test_zero_sync_period_is_applied(self, db_url):
        """Zero is passed through; the controller raises it to its floor."""
        settings = _settings(argparse.Namespace(workers=2, sync_period=0, dry_run_client=True))

        assert settings.GC_SYNC_PERIOD_SECONDS == 0
        assert settings.GC_WORKERS == 2
        assert settings.DELETE_REQUEST_CLIENT == "dry-run"
