"""
Identity store: users keyed by email and/or wallet address.

Uniqueness is enforced by the database (unique indexes on `email` and
`wallet_address`), so two concurrent creates for the same key produce one row
and one ConflictError; the loser re-reads with find_by_*.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from dapp_auth.core.errors import ConflictError, StoreUnavailableError
from dapp_auth.models.records import UserRecord
from dapp_auth.models.users import User

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "email")
# fields a user must have before the profile counts as complete
REQUIRED_PROFILE_FIELDS = ("name", "email")


def _utc(moment: datetime) -> datetime:
    # SQLite drops tzinfo
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _is_complete(user: User) -> bool:
    return all(getattr(user, field) for field in REQUIRED_PROFILE_FIELDS)


def _to_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        name=user.name,
        password_hash=user.password_hash,
        wallet_address=user.wallet_address,
        profile_complete=bool(user.profile_complete),
        created_at=_utc(user.created_at),
        updated_at=_utc(user.updated_at),
        last_login_at=_utc(user.last_login_at) if user.last_login_at else None,
    )


class IdentityStore(Protocol):
    def find_by_id(self, user_id: str) -> Optional[UserRecord]: ...

    def find_by_email(self, email: str) -> Optional[UserRecord]: ...

    def find_by_wallet(self, address: str) -> Optional[UserRecord]: ...

    def create_with_email(self, email: str, password_hash: str, name: Optional[str] = None) -> UserRecord: ...

    def create_with_wallet(self, address: str) -> UserRecord: ...

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserRecord]: ...

    def link_wallet(self, user_id: str, address: str) -> Optional[UserRecord]: ...

    def record_login(self, user_id: str) -> Optional[UserRecord]: ...

    def health(self) -> bool: ...

    def close(self) -> None: ...


class SqlIdentityStore:
    """IdentityStore over the SQLAlchemy `users` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self, conflict_message: str = "User already exists") -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except IntegrityError:
            session.rollback()
            raise ConflictError(conflict_message)
        except (OperationalError, InterfaceError) as e:
            session.rollback()
            logger.error("User store error: %s", e)
            raise StoreUnavailableError("User store unavailable")
        finally:
            session.close()

    def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        with self._session() as session:
            user = session.get(User, user_id)
            return _to_record(user) if user else None

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        with self._session() as session:
            stmt = select(User).where(User.email == email.strip().lower())
            user = session.execute(stmt).scalars().first()
            return _to_record(user) if user else None

    def find_by_wallet(self, address: str) -> Optional[UserRecord]:
        with self._session() as session:
            stmt = select(User).where(User.wallet_address == address.strip().lower())
            user = session.execute(stmt).scalars().first()
            return _to_record(user) if user else None

    def create_with_email(self, email: str, password_hash: str, name: Optional[str] = None) -> UserRecord:
        """
        Raises:
            ConflictError: the email is already registered
        """
        with self._session("Email already registered") as session:
            user = User(email=email.strip().lower(), password_hash=password_hash, name=name)
            user.profile_complete = _is_complete(user)
            session.add(user)
            session.commit()
            return _to_record(user)

    def create_with_wallet(self, address: str) -> UserRecord:
        """
        Raises:
            ConflictError: the wallet address is already registered
        """
        with self._session("Wallet address already registered") as session:
            user = User(wallet_address=address.strip().lower(), profile_complete=False)
            session.add(user)
            session.commit()
            return _to_record(user)

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserRecord]:
        """
        Partial update of PROFILE_FIELDS. Unknown keys and None values are ignored.
        Returns None when the user does not exist.

        Raises:
            ConflictError: the new email belongs to another user
        """
        with self._session("Email already registered") as session:
            user = session.get(User, user_id)
            if user is None:
                return None
            for field in PROFILE_FIELDS:
                value = fields.get(field)
                if value is None:
                    continue
                if field == "email":
                    value = value.strip().lower()
                setattr(user, field, value)
            user.profile_complete = _is_complete(user)
            user.updated_at = datetime.now(timezone.utc)
            session.commit()
            return _to_record(user)

    def link_wallet(self, user_id: str, address: str) -> Optional[UserRecord]:
        """
        Attach a wallet address to an existing user. Returns None when the
        user does not exist.

        Raises:
            ConflictError: the address belongs to another user
        """
        with self._session("Wallet address already registered") as session:
            user = session.get(User, user_id)
            if user is None:
                return None
            user.wallet_address = address.strip().lower()
            user.updated_at = datetime.now(timezone.utc)
            session.commit()
            return _to_record(user)

    def record_login(self, user_id: str) -> Optional[UserRecord]:
        """Stamp `last_login_at`; returns None when the user does not exist."""
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                return None
            user.last_login_at = datetime.now(timezone.utc)
            session.commit()
            return _to_record(user)

    def health(self) -> bool:
        try:
            self.find_by_id("00000000-0000-0000-0000-000000000000")
            return True
        except StoreUnavailableError:
            return False

    def close(self) -> None:
        # the engine is owned by Backends
        pass
