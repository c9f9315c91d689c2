"""Refresh session records: one row per issued refresh token."""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from app.core.database import Base


class RefreshSession(Base):
    __tablename__ = "refresh_sessions"
    __table_args__ = (
        Index("ix_refresh_sessions_user_family", "user_id", "family_id"),
        Index("ix_refresh_sessions_user_revoked", "user_id", "revoked_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Rotation chain
    jti = Column(String(128), nullable=False, unique=True, index=True)
    family_id = Column(String(128), nullable=False)
    parent_jti = Column(String(128), nullable=True, index=True)
    rotated_to_jti = Column(String(128), nullable=True)

    # "signed" or "opaque"; only opaque tokens keep a hash
    token_type = Column(String(16), nullable=False)
    token_hash = Column(String(128), nullable=True)

    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    family_issued_at = Column(DateTime, nullable=False)

    revoked_at = Column(DateTime, nullable=True, index=True)
    revoked_reason = Column(String(64), nullable=True)
    rotated_at = Column(DateTime, nullable=True)
    reused_at = Column(DateTime, nullable=True)

    # Informational only
    device_id = Column(String(128), nullable=True)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(45), nullable=True)

    @property
    def is_root(self) -> bool:
        return self.parent_jti is None

    def is_live(self, now) -> bool:
        return self.revoked_at is None and self.expires_at > now

    def __repr__(self):
        return f"<RefreshSession {self.id} user={self.user_id} family={self.family_id[:8]}>"
