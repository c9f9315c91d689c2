"""Persistence for refresh session records.

Every method runs in its own short transaction. Mutations go through
conditional UPDATE statements so concurrent callers, possibly in different
processes, resolve without application-level locks.
"""
from datetime import datetime, timedelta
import logging
from typing import Optional

from sqlalchemy import and_, delete, or_, update

from app.core.constants import RevokeReason
from app.core.database import Database
from app.models.session import RefreshSession
from app.utils.decorators import read_operation, write_operation

logger = logging.getLogger(__name__)


class RefreshTokenStore:
    def __init__(self, database: Database):
        self._database = database

    @staticmethod
    def _live_filter(user_id: int, now: datetime, family_issued_after: Optional[datetime]):
        clauses = [
            RefreshSession.user_id == user_id,
            RefreshSession.revoked_at.is_(None),
            RefreshSession.expires_at > now,
        ]
        if family_issued_after is not None:
            clauses.append(RefreshSession.family_issued_at >= family_issued_after)
        return and_(*clauses)

    @write_operation
    def create(self, record: RefreshSession) -> RefreshSession:
        with self._database.session() as db:
            db.add(record)
            db.commit()
            return record

    @read_operation
    def find_by_jti(self, jti: str) -> Optional[RefreshSession]:
        with self._database.session() as db:
            return db.query(RefreshSession).filter(RefreshSession.jti == jti).first()

    @read_operation
    def find_by_id(self, session_id: str) -> Optional[RefreshSession]:
        with self._database.session() as db:
            return db.get(RefreshSession, session_id)

    @write_operation
    def mark_rotated(self, old_jti: str, child: RefreshSession, now: datetime) -> Optional[RefreshSession]:
        """Retire ``old_jti`` and insert its child atomically.

        The parent is only updated while it is still un-rotated and un-revoked;
        when that conditional UPDATE matches nothing the transaction is rolled
        back and None is returned, so two racing callers never both succeed.
        """
        with self._database.session() as db:
            result = db.execute(
                update(RefreshSession)
                .where(
                    RefreshSession.jti == old_jti,
                    RefreshSession.rotated_at.is_(None),
                    RefreshSession.revoked_at.is_(None),
                )
                .values(
                    rotated_at=now,
                    rotated_to_jti=child.jti,
                    revoked_at=now,
                    revoked_reason=RevokeReason.ROTATED.value,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                return None
            db.add(child)
            db.commit()
            return child

    @write_operation
    def mark_reused(self, jti: str, now: datetime) -> bool:
        with self._database.session() as db:
            result = db.execute(
                update(RefreshSession)
                .where(RefreshSession.jti == jti, RefreshSession.reused_at.is_(None))
                .values(reused_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    @write_operation
    def revoke_by_id(self, session_id: str, now: datetime, reason: RevokeReason) -> bool:
        with self._database.session() as db:
            result = db.execute(
                update(RefreshSession)
                .where(RefreshSession.id == session_id, RefreshSession.revoked_at.is_(None))
                .values(revoked_at=now, revoked_reason=reason.value)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    @write_operation
    def revoke_by_jti(self, jti: str, now: datetime, reason: RevokeReason) -> bool:
        with self._database.session() as db:
            result = db.execute(
                update(RefreshSession)
                .where(RefreshSession.jti == jti, RefreshSession.revoked_at.is_(None))
                .values(revoked_at=now, revoked_reason=reason.value)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    @write_operation
    def revoke_family(self, user_id: int, family_id: str, now: datetime, reason: RevokeReason) -> int:
        if not user_id or not family_id:
            return 0
        with self._database.session() as db:
            result = db.execute(
                update(RefreshSession)
                .where(
                    RefreshSession.user_id == user_id,
                    RefreshSession.family_id == family_id,
                    RefreshSession.revoked_at.is_(None),
                )
                .values(revoked_at=now, revoked_reason=reason.value)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount

    @write_operation
    def revoke_all_for_user(
        self,
        user_id: int,
        now: datetime,
        reason: RevokeReason,
        except_family_id: Optional[str] = None,
    ) -> int:
        with self._database.session() as db:
            stmt = update(RefreshSession).where(
                RefreshSession.user_id == user_id,
                RefreshSession.revoked_at.is_(None),
            )
            if except_family_id:
                stmt = stmt.where(RefreshSession.family_id != except_family_id)
            result = db.execute(
                stmt.values(revoked_at=now, revoked_reason=reason.value)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount

    @read_operation
    def count_live(self, user_id: int, now: datetime, family_issued_after: Optional[datetime] = None) -> int:
        with self._database.session() as db:
            return (
                db.query(RefreshSession)
                .filter(self._live_filter(user_id, now, family_issued_after))
                .count()
            )

    @read_operation
    def list_live(self, user_id: int, now: datetime, family_issued_after: Optional[datetime] = None) -> list[RefreshSession]:
        with self._database.session() as db:
            return (
                db.query(RefreshSession)
                .filter(self._live_filter(user_id, now, family_issued_after))
                .order_by(RefreshSession.issued_at.desc())
                .all()
            )

    @read_operation
    def find_oldest_live(
        self,
        user_id: int,
        n: int,
        now: datetime,
        family_issued_after: Optional[datetime] = None,
    ) -> list[RefreshSession]:
        if n <= 0:
            return []
        with self._database.session() as db:
            return (
                db.query(RefreshSession)
                .filter(self._live_filter(user_id, now, family_issued_after))
                .order_by(RefreshSession.family_issued_at.asc(), RefreshSession.issued_at.asc())
                .limit(n)
                .all()
            )

    @write_operation
    def purge(self, now: datetime, expired_grace: timedelta, revoked_retention: timedelta) -> int:
        """Delete records past expiry, and revoked tips past retention.

        Rotated parents stay until they expire so a replay is still recognised.
        """
        with self._database.session() as db:
            result = db.execute(
                delete(RefreshSession)
                .where(
                    or_(
                        RefreshSession.expires_at < now - expired_grace,
                        and_(
                            RefreshSession.revoked_at < now - revoked_retention,
                            RefreshSession.rotated_at.is_(None),
                        ),
                    )
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            logger.info("Purged %s refresh session records", result.rowcount)
            return result.rowcount
