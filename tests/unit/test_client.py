"""Unit tests for delete request clients and the SQL backup source."""

import uuid
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from backup_gc.client import (
    NAME_SUFFIX_ALPHABET,
    DryRunDeleteBackupRequestClient,
    SqlDeleteBackupRequestClient,
    generate_name,
    get_delete_request_client,
)
from backup_gc.delete_requests import new_delete_backup_request
from backup_gc.models import Backup, DeleteBackupRequestRow
from backup_gc.store import SqlBackupSource
from backup_gc.types import BACKUP_UID_LABEL


class TestGenerateName:
    def test_suffix(self):
        name = generate_name("nightly-")

        assert name.startswith("nightly-")
        suffix = name[len("nightly-") :]
        assert len(suffix) == 5
        assert set(suffix) <= set(NAME_SUFFIX_ALPHABET)


class TestSqlDeleteBackupRequestClient:
    """Tests for SqlDeleteBackupRequestClient."""

    def test_create_persists_row(self, session_factory):
        client = SqlDeleteBackupRequestClient(session_factory)
        request = new_delete_backup_request("nightly", "uid-1")

        created = client.create("velero", request)

        assert created.namespace == "velero"
        assert created.name.startswith("nightly-")
        with session_factory() as session:
            rows = session.scalars(select(DeleteBackupRequestRow)).all()
        assert len(rows) == 1
        row = rows[0]
        assert row.namespace == "velero"
        assert row.name == created.name
        assert row.backup_name == "nightly"
        assert row.backup_uid == "uid-1"
        assert row.labels[BACKUP_UID_LABEL] == "uid-1"
        assert row.phase == "New"

    def test_duplicate_submissions_create_separate_rows(self, session_factory):
        """Repeated requests for one backup are stored; the consumer dedups by uid."""
        client = SqlDeleteBackupRequestClient(session_factory)
        request = new_delete_backup_request("nightly", "uid-1")

        client.create("velero", request)
        client.create("velero", request)

        with session_factory() as session:
            rows = session.scalars(select(DeleteBackupRequestRow)).all()
        assert len(rows) == 2
        assert {r.backup_uid for r in rows} == {"uid-1"}

    def test_commit_failure_rolls_back_and_raises(self):
        session = MagicMock()
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("db down"))
        session_factory = MagicMock()
        session_factory.return_value.__enter__.return_value = session

        client = SqlDeleteBackupRequestClient(session_factory)

        with pytest.raises(OperationalError):
            client.create("velero", new_delete_backup_request("nightly", "uid-1"))

        session.rollback.assert_called_once()


class TestDryRunClient:
    def test_records_without_persisting(self):
        client = DryRunDeleteBackupRequestClient()

        created = client.create("velero", new_delete_backup_request("nightly", "uid-1"))

        assert client.created == [created]
        assert created.namespace == "velero"


class TestClientFactory:
    def test_sql(self, session_factory):
        client = get_delete_request_client("sql", session_factory)
        assert client.name == "sql"

    def test_sql_requires_session_factory(self):
        with pytest.raises(ValueError, match="session factory"):
            get_delete_request_client("sql")

    def test_dry_run(self):
        assert get_delete_request_client(" Dry-Run ").name == "dry-run"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown delete request client"):
            get_delete_request_client("kafka")


class TestSqlBackupSource:
    """Tests for SqlBackupSource."""

    def test_lists_backups_as_records(self, session_factory):
        expiration = datetime(2026, 1, 1, tzinfo=UTC)
        with session_factory() as session:
            session.add(Backup(id=uuid.uuid4(), namespace="velero", name="a", uid="uid-a", expiration=expiration))
            session.add(Backup(id=uuid.uuid4(), namespace="velero", name="b", uid="uid-b", expiration=None))
            session.commit()

        records = SqlBackupSource(session_factory).list_backups()

        assert [r.name for r in records] == ["a", "b"]
        assert records[0].uid == "uid-a"
        assert records[0].expiration == expiration
        assert records[0].expiration.tzinfo is not None
        assert records[1].expiration is None
