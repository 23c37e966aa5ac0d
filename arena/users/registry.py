"""
User Registry

Maps an opaque user id to accumulated statistics. Records are created
lazily on first interaction and never deleted. Two backends:
- InMemoryUserRegistry: dict behind a lock
- SqlUserRegistry: SQLAlchemy `users` table, one short transaction per call
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from arena.engine.errors import UserRegistryError
from arena.utils.database import User, get_db


@dataclass(frozen=True)
class UserRecord:
    """
    Player statistics.

    Attributes:
        user_id: Opaque user identifier
        registered_at: First interaction time
        prediction_count: Rounds entered
        win_count: Winning predictions
        cumulative_reward: Total symbolic reward credited
    """
    user_id: str
    registered_at: datetime
    prediction_count: int = 0
    win_count: int = 0
    cumulative_reward: float = 0.0

    @property
    def accuracy(self) -> float:
        """Win rate in percent (0 when no predictions)."""
        if self.prediction_count == 0:
            return 0.0
        return self.win_count / self.prediction_count * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'registered_at': self.registered_at.isoformat(),
            'prediction_count': self.prediction_count,
            'win_count': self.win_count,
            'cumulative_reward': self.cumulative_reward,
            'accuracy': round(self.accuracy, 2),
        }


class UserRegistry(ABC):
    """User statistics store. Failures raise UserRegistryError."""

    @abstractmethod
    def get_or_create(self, user_id: str) -> UserRecord:
        """Return the user's record, creating it on first use."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[UserRecord]:
        """Return the user's record, or None if never seen."""

    @abstractmethod
    def record_win(self, user_id: str, reward: float) -> UserRecord:
        """Increment win count and add reward to the user's total."""

    @abstractmethod
    def record_prediction_made(self, user_id: str) -> UserRecord:
        """Increment the user's prediction count."""

    @abstractmethod
    def all_users(self) -> List[UserRecord]:
        """All known users."""


class InMemoryUserRegistry(UserRegistry):
    """Thread-safe in-process registry."""

    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._lock = threading.Lock()

    def _get_or_create_locked(self, user_id: str) -> UserRecord:
        record = self._users.get(user_id)
        if record is None:
            record = UserRecord(user_id=user_id, registered_at=datetime.now(timezone.utc))
            self._users[user_id] = record
            logger.info(f"New user registered: {user_id}")
        return record

    def get_or_create(self, user_id: str) -> UserRecord:
        with self._lock:
            return self._get_or_create_locked(user_id)

    def get(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self._users.get(user_id)

    def record_win(self, user_id: str, reward: float) -> UserRecord:
        with self._lock:
            record = self._get_or_create_locked(user_id)
            updated = replace(
                record,
                win_count=record.win_count + 1,
                cumulative_reward=record.cumulative_reward + reward,
            )
            self._users[user_id] = updated
            return updated

    def record_prediction_made(self, user_id: str) -> UserRecord:
        with self._lock:
            record = self._get_or_create_locked(user_id)
            updated = replace(record, prediction_count=record.prediction_count + 1)
            self._users[user_id] = updated
            return updated

    def all_users(self) -> List[UserRecord]:
        with self._lock:
            return list(self._users.values())


class SqlUserRegistry(UserRegistry):
    """Registry backed by the SQLAlchemy `users` table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """
        Args:
            session_factory: Session factory (defaults to the global one from init_db)
        """
        self.session_factory = session_factory

    @staticmethod
    def _to_record(row: User) -> UserRecord:
        registered_at = row.registered_at
        if registered_at.tzinfo is None:
            registered_at = registered_at.replace(tzinfo=timezone.utc)
        return UserRecord(
            user_id=row.user_id,
            registered_at=registered_at,
            prediction_count=row.prediction_count,
            win_count=row.win_count,
            cumulative_reward=row.cumulative_reward,
        )

    @staticmethod
    def _load_or_create(db, user_id: str) -> User:
        row = db.get(User, user_id)
        if row is None:
            row = User(
                user_id=user_id,
                registered_at=datetime.now(timezone.utc),
                prediction_count=0,
                win_count=0,
                cumulative_reward=0.0,
            )
            db.add(row)
            db.flush()
            logger.info(f"New user registered: {user_id}")
        return row

    def _update(self, user_id: str, mutate) -> UserRecord:
        try:
            with get_db(self.session_factory) as db:
                row = self._load_or_create(db, user_id)
                mutate(row)
                db.flush()
                return self._to_record(row)
        except IntegrityError:
            # Concurrent first insert for the same user; retry once against the existing row
            try:
                with get_db(self.session_factory) as db:
                    row = self._load_or_create(db, user_id)
                    mutate(row)
                    db.flush()
                    return self._to_record(row)
            except SQLAlchemyError as e:
                raise UserRegistryError(f"Failed to update user {user_id}: {e}") from e
        except SQLAlchemyError as e:
            raise UserRegistryError(f"Failed to update user {user_id}: {e}") from e

    def get_or_create(self, user_id: str) -> UserRecord:
        return self._update(user_id, lambda row: None)

    def get(self, user_id: str) -> Optional[UserRecord]:
        try:
            with get_db(self.session_factory) as db:
                row = db.get(User, user_id)
                return self._to_record(row) if row else None
        except SQLAlchemyError as e:
            raise UserRegistryError(f"Failed to read user {user_id}: {e}") from e

    def record_win(self, user_id: str, reward: float) -> UserRecord:
        def mutate(row: User) -> None:
            row.win_count += 1
            row.cumulative_reward += reward

        return self._update(user_id, mutate)

    def record_prediction_made(self, user_id: str) -> UserRecord:
        def mutate(row: User) -> None:
            row.prediction_count += 1

        return self._update(user_id, mutate)

    def all_users(self) -> List[UserRecord]:
        try:
            with get_db(self.session_factory) as db:
                rows = db.execute(select(User)).scalars().all()
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise UserRegistryError(f"Failed to list users: {e}") from e
