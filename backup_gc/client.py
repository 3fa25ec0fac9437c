"""
Clients that persist delete backup requests.

Design principles:
- One create() call per request; a request is never updated after submission
- Errors propagate unchanged; retry policy belongs to the controller queue
- The deletion side keys its work on backup UID, so duplicate requests are harmless
"""

import logging
import random
import threading
from abc import ABC, abstractmethod
from dataclasses import replace

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from backup_gc.models import DeleteBackupRequestRow
from backup_gc.types import DeleteBackupRequest

logger = logging.getLogger(__name__)

# Same alphabet and length Kubernetes uses for generateName suffixes
# (no vowels, no easily confused characters).
NAME_SUFFIX_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"
NAME_SUFFIX_LENGTH = 5


def generate_name(prefix: str) -> str:
    """Append a random suffix to a generate_name prefix."""
    suffix = "".join(random.choice(NAME_SUFFIX_ALPHABET) for _ in range(NAME_SUFFIX_LENGTH))
    return f"{prefix}{suffix}"


class DeleteBackupRequestClient(ABC):
    """Abstract interface for submitting delete backup requests."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Client name (e.g., 'sql', 'dry-run')."""
        pass

    @abstractmethod
    def create(self, namespace: str, request: DeleteBackupRequest) -> DeleteBackupRequest:
        """
        Persist a delete request in a namespace.

        Args:
            namespace: Namespace of the backup being deleted
            request: Request built by new_delete_backup_request

        Returns:
            The stored request with namespace and name assigned
        """
        pass


class SqlDeleteBackupRequestClient(DeleteBackupRequestClient):
    """Writes requests to the delete_backup_requests table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    @property
    def name(self) -> str:
        return "sql"

    def create(self, namespace: str, request: DeleteBackupRequest) -> DeleteBackupRequest:
        stored = replace(request, namespace=namespace, name=generate_name(request.generate_name))

        with self.session_factory() as session:
            session.add(
                DeleteBackupRequestRow(
                    namespace=namespace,
                    name=stored.name,
                    backup_name=stored.backup_name,
                    backup_uid=stored.backup_uid,
                    labels=dict(stored.labels),
                )
            )
            try:
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

        return stored


class DryRunDeleteBackupRequestClient(DeleteBackupRequestClient):
    """Logs and remembers requests without persisting them."""

    def __init__(self):
        self._created: list[DeleteBackupRequest] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "dry-run"

    @property
    def created(self) -> list[DeleteBackupRequest]:
        with self._lock:
            return list(self._created)

    def create(self, namespace: str, request: DeleteBackupRequest) -> DeleteBackupRequest:
        stored = replace(request, namespace=namespace, name=generate_name(request.generate_name))
        with self._lock:
            self._created.append(stored)
        logger.info(
            f"DRY RUN: would create DeleteBackupRequest {namespace}/{stored.name} for backup {request.backup_name}",
            extra={"event": "dry_run_delete_request", "backup": request.backup_name, "backup_uid": request.backup_uid},
        )
        return stored


def get_delete_request_client(
    client_name: str,
    session_factory: sessionmaker[Session] | None = None,
) -> DeleteBackupRequestClient:
    """
    Create a delete request client.

    Args:
        client_name: 'sql' or 'dry-run'
        session_factory: Required for 'sql'

    Returns:
        DeleteBackupRequestClient instance
    """
    name = client_name.lower().strip()

    if name == "sql":
        if session_factory is None:
            raise ValueError("The sql delete request client needs a session factory")
        client: DeleteBackupRequestClient = SqlDeleteBackupRequestClient(session_factory)
    elif name == "dry-run":
        client = DryRunDeleteBackupRequestClient()
    else:
        raise ValueError(f"Unknown delete request client: {client_name}. Available: sql, dry-run")

    logger.info(f"Delete request client initialized: {client.name}")
    return client
