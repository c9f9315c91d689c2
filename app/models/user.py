"""Identity records. Owned by the user service; this engine only reads them."""
from sqlalchemy import Column, Integer, String

from app.core.constants import UserRole, UserStatus
from app.core.database import Base
from app.models.base import TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)
    first_name = Column(String(100))
    last_name = Column(String(100))

    # OAuth
    google_id = Column(String(255), unique=True, index=True, nullable=True)

    role = Column(String(50), default=UserRole.LEARNER.value, nullable=False)
    status = Column(String(50), default=UserStatus.PENDING_ACTIVATION.value, index=True, nullable=False)

    def __repr__(self):
        return f"<User {self.email}>"
