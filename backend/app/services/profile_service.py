from __future__ import annotations

import contextlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import Column, DateTime, Float, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..config import get_settings

Base = declarative_base()

PROFILE_FIELDS = (
    "age",
    "gender",
    "height_cm",
    "weight_kg",
    "health_goal",
    "dietary_preference",
    "activity_level",
    "daily_calorie_target",
    "daily_water_target_ml",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: datetime) -> str:
    # SQLite drops tzinfo; stored values are always UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def describe_goal(health_goal: Optional[str]) -> Optional[str]:
    """Human-readable goal, e.g. ``lose_weight`` -> ``lose weight``."""
    if not health_goal:
        return None
    return health_goal.replace("_", " ")


def describe_diet(dietary_preference: Optional[str]) -> Optional[str]:
    """Diet label, hidden when the user has no preference."""
    if not dietary_preference or dietary_preference == "none":
        return None
    return dietary_preference


class UserProfile(Base):
    __tablename__ = "user_profiles"

    user_id = Column(String(128), primary_key=True)
    age = Column(Integer, nullable=True)
    gender = Column(String(16), nullable=True)
    height_cm = Column(Float, nullable=True)
    weight_kg = Column(Float, nullable=True)
    health_goal = Column(String(64), nullable=True)
    dietary_preference = Column(String(64), nullable=False, default="none")
    activity_level = Column(String(32), nullable=False, default="moderate")
    daily_calorie_target = Column(Integer, nullable=True)
    daily_water_target_ml = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    def as_dict(self) -> Dict[str, Any]:
        data = {field: getattr(self, field) for field in PROFILE_FIELDS}
        data["user_id"] = self.user_id
        data["created_at"] = _isoformat(self.created_at)
        data["updated_at"] = _isoformat(self.updated_at)
        return data


class ProfileService:
    """Row-level CRUD over user profiles, keyed by user id."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False, future=True)
        Base.metadata.create_all(self._engine)

    @contextlib.contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session: Session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        with self._session() as session:
            return session.get(UserProfile, user_id)

    def upsert_profile(self, user_id: str, fields: Dict[str, Any]) -> UserProfile:
        """Insert or update the profile row; ``user_id`` is the conflict target."""
        values = {key: value for key, value in fields.items() if key in PROFILE_FIELDS}
        with self._session() as session:
            profile = session.get(UserProfile, user_id)
            if profile is None:
                profile = UserProfile(user_id=user_id, **values)
                session.add(profile)
            else:
                for key, value in values.items():
                    setattr(profile, key, value)
                profile.updated_at = _now()
            session.flush()
            return profile

    def delete_profile(self, user_id: str) -> bool:
        with self._session() as session:
            profile = session.get(UserProfile, user_id)
            if profile is None:
                return False
            session.delete(profile)
            return True


def _normalize_sqlite_dsn(dsn: str) -> str:
    prefix = "sqlite:///"
    if not dsn.startswith(prefix):
        return dsn
    raw_path = dsn[len(prefix):]
    if not raw_path or raw_path == ":memory:":
        return dsn
    p = Path(raw_path)
    if p.is_absolute():
        full = p
    else:
        base_dir = Path(__file__).resolve().parents[2]  # <repo>/backend
        # If path redundantly starts with 'backend/', strip it to avoid backend/backend
        if raw_path.startswith("backend/"):
            raw_path = raw_path.split("backend/", 1)[1]
        full = base_dir / raw_path
    full.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{full}"


def _create_engine() -> Engine:
    settings = get_settings()
    dsn = _normalize_sqlite_dsn(settings.profile_dsn)
    connect_args = {}
    if dsn.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    try:
        engine = create_engine(dsn, future=True, echo=False, connect_args=connect_args)
    except SQLAlchemyError as exc:  # pragma: no cover - engine init failure
        raise RuntimeError(f"Failed to initialize profile database: {exc}") from exc
    return engine


def get_profile_service() -> ProfileService:
    if not hasattr(get_profile_service, "_instance"):
        get_profile_service._instance = ProfileService(_create_engine())
    return get_profile_service._instance  # type: ignore[attr-defined]
