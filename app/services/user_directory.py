"""Read-only access to the external user store."""
from dataclasses import dataclass
from typing import Optional

from app.core.constants import UserStatus
from app.core.database import Database
from app.models.user import User
from app.utils.decorators import read_operation


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str
    role: str
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    @property
    def is_deactivated(self) -> bool:
        return self.status == UserStatus.DEACTIVATED.value


@dataclass(frozen=True)
class UserRecord:
    identity: Identity
    password_hash: Optional[str]
    google_id: Optional[str]


def _to_record(user: Optional[User]) -> Optional[UserRecord]:
    if user is None:
        return None
    return UserRecord(
        identity=Identity(user_id=user.id, email=user.email, role=user.role, status=user.status),
        password_hash=user.password_hash,
        google_id=user.google_id,
    )


class UserDirectory:
    def __init__(self, database: Database):
        self._database = database

    @read_operation
    def get_by_id(self, user_id: int) -> Optional[UserRecord]:
        with self._database.session() as db:
            return _to_record(db.get(User, user_id))

    @read_operation
    def get_by_email(self, email: str) -> Optional[UserRecord]:
        with self._database.session() as db:
            return _to_record(db.query(User).filter(User.email == email.strip().lower()).first())

    @read_operation
    def get_by_google_id(self, google_id: str) -> Optional[UserRecord]:
        with self._database.session() as db:
            return _to_record(db.query(User).filter(User.google_id == google_id).first())
