"""
Credential store and resolver for provider API keys.

Invariant: for a given service at most one key is active. Activation runs in
two committed steps, deactivate-all then activate-target, and the second step
only succeeds while no sibling is active. A failure between the steps leaves
the service with no active key, never two. In SQL the api_keys table also
carries a partial unique index on (service) WHERE is_active, so concurrent
writers in other processes cannot both win.

Storage goes through CredentialRepository, so the same policy runs against
SQLAlchemy (SqlCredentialRepository) or memory (InMemoryCredentialRepository).
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Dict, List, Optional, Union

from cryptography.fernet import InvalidToken
from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from ideabox.core.encryption import decrypt_secret, encrypt_secret, mask_secret
from ideabox.models.api_key import APIKey, Service

logger = logging.getLogger(__name__)


@dataclass
class CredentialRecord:
    """Detached copy of a stored key. The secret stays encrypted."""
    id: str
    name: str
    service: str
    encrypted_key: str = field(repr=False)
    is_active: bool = False
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None


@dataclass(frozen=True)
class ResolvedCredential:
    key_id: Optional[str]  # None for env fallback keys
    secret: str = field(repr=False)


class CredentialError(Exception):
    status_code = 400


class KeyNotFound(CredentialError):
    status_code = 404

    def __init__(self, key_id: str):
        self.key_id = key_id
        super().__init__(f"API key not found: {key_id}")


class ActivationConflict(CredentialError):
    """Another key of the same service became active between the two steps."""
    status_code = 409


# --- Repositories ---


class CredentialRepository(ABC):
    """Persistence port for API key records."""

    @abstractmethod
    def add(self, record: CredentialRecord) -> CredentialRecord:
        ...

    @abstractmethod
    def get(self, key_id: str) -> Optional[CredentialRecord]:
        ...

    @abstractmethod
    def list(self, service: Optional[str] = None) -> List[CredentialRecord]:
        ...

    @abstractmethod
    def delete(self, key_id: str) -> bool:
        """Remove a record. Returns False if it did not exist."""
        ...

    @abstractmethod
    def find_active_key(self, service: str) -> Optional[CredentialRecord]:
        """Newest active record for the service."""
        ...

    @abstractmethod
    def deactivate_all_for_service(self, service: str) -> int:
        ...

    @abstractmethod
    def activate_by_id(self, key_id: str) -> bool:
        """Activate a record if no sibling of its service is active.

        Returns False if the record is gone or a sibling is already active.
        Must be a single atomic operation in the backing store.
        """
        ...

    @abstractmethod
    def touch_last_used(self, key_id: str, when: datetime) -> None:
        ...


class SqlCredentialRepository(CredentialRepository):
    """SQLAlchemy-backed repository. Every write commits on its own."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _to_record(row: APIKey) -> CredentialRecord:
        return CredentialRecord(
            id=row.id,
            name=row.name,
            service=row.service,
            encrypted_key=row.encrypted_key,
            is_active=bool(row.is_active),
            created_by=row.created_by,
            created_at=row.created_at,
            last_used_at=row.last_used_at,
        )

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def add(self, record):
        row = APIKey(
            id=record.id,
            name=record.name,
            service=record.service,
            encrypted_key=record.encrypted_key,
            is_active=record.is_active,
            created_by=record.created_by,
            created_at=record.created_at,
        )
        self.db.add(row)
        self._commit()
        self.db.refresh(row)
        return self._to_record(row)

    def get(self, key_id):
        row = self.db.get(APIKey, key_id)
        return self._to_record(row) if row else None

    def list(self, service=None):
        stmt = select(APIKey).order_by(APIKey.created_at.desc())
        if service:
            stmt = stmt.where(APIKey.service == service)
        return [self._to_record(r) for r in self.db.scalars(stmt)]

    def delete(self, key_id):
        row = self.db.get(APIKey, key_id)
        if row is None:
            return False
        self.db.delete(row)
        self._commit()
        return True

    def find_active_key(self, service):
        stmt = (
            select(APIKey)
            .where(APIKey.service == service, APIKey.is_active == True)
            .order_by(APIKey.created_at.desc())
            .limit(1)
        )
        row = self.db.scalars(stmt).first()
        return self._to_record(row) if row else None

    def deactivate_all_for_service(self, service):
        stmt = (
            update(APIKey)
            .where(APIKey.service == service, APIKey.is_active == True)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self._commit()
        self.db.expire_all()
        return result.rowcount

    def activate_by_id(self, key_id):
        service = self.db.scalar(select(APIKey.service).where(APIKey.id == key_id))
        if service is None:
            return False
        sibling = aliased(APIKey)
        active_sibling = exists().where(sibling.service == service, sibling.is_active == True)
        stmt = (
            update(APIKey)
            .where(APIKey.id == key_id, ~active_sibling)
            .values(is_active=True)
            .execution_options(synchronize_session=False)
        )
        # NOT EXISTS cannot see a concurrent uncommitted activation under
        # READ COMMITTED; the partial unique index rejects the second writer
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Activation of API key %s lost to a concurrent activation", key_id)
            return False
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.expire_all()
        return result.rowcount == 1

    def touch_last_used(self, key_id, when):
        stmt = (
            update(APIKey)
            .where(APIKey.id == key_id)
            .values(last_used_at=when)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self._commit()


class InMemoryCredentialRepository(CredentialRepository):
    """Process-local repository for tests and single-process tools."""

    def __init__(self):
        self._records: Dict[str, CredentialRecord] = {}
        self._lock = threading.Lock()

    def add(self, record):
        with self._lock:
            self._records[record.id] = copy.copy(record)
            return copy.copy(record)

    def get(self, key_id):
        with self._lock:
            record = self._records.get(key_id)
            return copy.copy(record) if record else None

    def list(self, service=None):
        with self._lock:
            records = [
                copy.copy(r) for r in self._records.values()
                if service is None or r.service == service
            ]
        records.sort(key=lambda r: r.created_at.timestamp() if r.created_at else 0.0, reverse=True)
        return records

    def delete(self, key_id):
        with self._lock:
            return self._records.pop(key_id, None) is not None

    def find_active_key(self, service):
        active = [r for r in self.list(service) if r.is_active]
        return active[0] if active else None

    def deactivate_all_for_service(self, service):
        with self._lock:
            changed = 0
            for record in self._records.values():
                if record.service == service and record.is_active:
                    record.is_active = False
                    changed += 1
            return changed

    def activate_by_id(self, key_id):
        with self._lock:
            target = self._records.get(key_id)
            if target is None:
                return False
            if any(
                r.is_active for r in self._records.values()
                if r.service == target.service and r.id != key_id
            ):
                return False
            target.is_active = True
            return True

    def touch_last_used(self, key_id, when):
        with self._lock:
            if key_id in self._records:
                self._records[key_id].last_used_at = when


# --- Store ---


class CredentialStore:
    """Key management and active-key resolution on top of a repository."""

    def __init__(self, repository: CredentialRepository, encryption_secret: str):
        self.repository = repository
        self._encryption_secret = encryption_secret

    def create(
        self,
        name: str,
        service: Union[Service, str],
        secret: str,
        created_by: Optional[str] = None,
    ) -> CredentialRecord:
        """Store a new key. It becomes active only if its service has none."""
        name = (name or "").strip()
        secret = (secret or "").strip()
        if not name or not secret:
            raise ValueError("Name and API key are required")
        service = Service(service).value

        record = self.repository.add(CredentialRecord(
            id=str(uuid.uuid4()),
            name=name,
            service=service,
            encrypted_key=encrypt_secret(secret, self._encryption_secret),
            is_active=False,
            created_by=created_by,
            created_at=datetime.now(UTC),
        ))
        # Conditional activation: a concurrent create may win, then this one stays inactive
        if self.repository.find_active_key(service) is None:
            self.repository.activate_by_id(record.id)
        logger.info("Created API key %s (%s) for %s", record.id, name, service)
        return self.get(record.id)

    def get(self, key_id: str) -> CredentialRecord:
        record = self.repository.get(key_id)
        if record is None:
            raise KeyNotFound(key_id)
        return record

    def list(self, service: Optional[str] = None) -> List[CredentialRecord]:
        return self.repository.list(service)

    def delete(self, key_id: str) -> None:
        """Remove a key. Deleting the active key leaves the service without one."""
        if not self.repository.delete(key_id):
            raise KeyNotFound(key_id)
        logger.info("Deleted API key %s", key_id)

    def activate(self, key_id: str) -> CredentialRecord:
        record = self.get(key_id)
        self.repository.deactivate_all_for_service(record.service)
        if not self.repository.activate_by_id(key_id):
            if self.repository.get(key_id) is None:
                raise KeyNotFound(key_id)
            raise ActivationConflict(
                f"Another {record.service} key was activated concurrently"
            )
        logger.info("Activated API key %s for %s", key_id, record.service)
        return self.get(key_id)

    def reveal(self, key_id: str) -> str:
        """Plaintext secret, for the admin copy-to-clipboard action."""
        return decrypt_secret(self.get(key_id).encrypted_key, self._encryption_secret)

    def preview(self, record: CredentialRecord) -> str:
        try:
            return mask_secret(decrypt_secret(record.encrypted_key, self._encryption_secret))
        except InvalidToken:
            return "...????"

    def active_key_ids(self) -> Dict[str, Optional[str]]:
        """Active key id per service, None where the service has none."""
        result = {}
        for service in Service:
            record = self.repository.find_active_key(service.value)
            result[service.value] = record.id if record else None
        return result

    # --- Resolver ---

    def get_active_key(self, service: Union[Service, str]) -> Optional[ResolvedCredential]:
        """Active key for a service, or None.

        Lookup and decryption failures are logged and reported as None so
        callers see the same result as for a service without keys.
        """
        service = service.value if isinstance(service, Service) else str(service)
        try:
            record = self.repository.find_active_key(service)
        except Exception:
            logger.exception("Error fetching active API key for %s", service)
            return None
        if record is None:
            return None
        try:
            secret = decrypt_secret(record.encrypted_key, self._encryption_secret)
        except InvalidToken:
            logger.error("Active API key %s for %s cannot be decrypted", record.id, service)
            return None
        return ResolvedCredential(key_id=record.id, secret=secret)

    def touch_last_used(self, key_id: str) -> None:
        try:
            self.repository.touch_last_used(key_id, datetime.now(UTC))
        except Exception as e:
            logger.warning("Could not update last_used_at for API key %s: %s", key_id, e)
