from __future__ import annotations

from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from orchestrator.db.models import UserProviderLimit


class UserSettingsStore(ABC):
    @abstractmethod
    def get_overrides(self, user_id: str) -> dict[str, int]:
        """Per-provider requests-per-minute overrides for a user."""
        raise NotImplementedError


class InMemorySettingsStore(UserSettingsStore):
    def __init__(self, overrides: dict[str, dict[str, int]] | None = None) -> None:
        self._overrides = {user: dict(limits) for user, limits in (overrides or {}).items()}

    def set_override(self, user_id: str, provider: str, requests_per_minute: int) -> None:
        self._overrides.setdefault(user_id, {})[provider] = requests_per_minute

    def get_overrides(self, user_id: str) -> dict[str, int]:
        return dict(self._overrides.get(user_id, {}))


class SqlUserSettingsStore(UserSettingsStore):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get_overrides(self, user_id: str) -> dict[str, int]:
        db = self._session_factory()
        try:
            rows = db.execute(select(UserProviderLimit).where(UserProviderLimit.user_id == user_id)).scalars().all()
        finally:
            db.close()
        return {row.provider: row.requests_per_minute for row in rows}

    def set_override(self, user_id: str, provider: str, requests_per_minute: int) -> None:
        db = self._session_factory()
        try:
            row = (
                db.query(UserProviderLimit)
                .filter(UserProviderLimit.user_id == user_id, UserProviderLimit.provider == provider)
                .one_or_none()
            )
            if row is None:
                row = UserProviderLimit(user_id=user_id, provider=provider, requests_per_minute=requests_per_minute)
            else:
                row.requests_per_minute = requests_per_minute
            db.add(row)
            db.commit()
        finally:
            db.close()
