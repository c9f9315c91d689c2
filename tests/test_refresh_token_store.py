"""Store-level tests: conditional writes, live counting and retention."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.constants import RevokeReason
from app.models.session import RefreshSession
from app.services.refresh_token_store import RefreshTokenStore
from app.utils.decorators import read_operation, write_operation
from app.utils.errors import StoreUnavailableError


@pytest.fixture
def store(database):
    return RefreshTokenStore(database)


@pytest.fixture
def add_record(store, clock):
    counter = {"n": 0}

    def _add_record(user_id, family_id=None, issued_at=None, lifetime=timedelta(days=7), family_issued_at=None, **fields):
        counter["n"] += 1
        jti = f"jti-{counter['n']}"
        issued_at = issued_at or clock.now
        record = RefreshSession(
            user_id=user_id,
            jti=jti,
            family_id=family_id or jti,
            token_type="signed",
            issued_at=issued_at,
            expires_at=issued_at + lifetime,
            family_issued_at=family_issued_at or issued_at,
            **fields,
        )
        return store.create(record)

    return _add_record


def _child_of(parent, jti, now):
    return RefreshSession(
        user_id=parent.user_id,
        jti=jti,
        family_id=parent.family_id,
        parent_jti=parent.jti,
        token_type="signed",
        issued_at=now,
        expires_at=now + timedelta(days=7),
        family_issued_at=parent.family_issued_at,
    )


def test_jti_is_unique(store, add_record, make_user, clock):
    user_id = make_user()
    record = add_record(user_id)

    duplicate = RefreshSession(
        user_id=user_id,
        jti=record.jti,
        family_id=record.family_id,
        token_type="signed",
        issued_at=clock.now,
        expires_at=clock.now + timedelta(days=1),
        family_issued_at=clock.now,
    )
    with pytest.raises(IntegrityError):
        store.create(duplicate)


def test_mark_rotated_succeeds_once(store, add_record, make_user, clock):
    parent = add_record(make_user())

    first = store.mark_rotated(parent.jti, _child_of(parent, "child-a", clock.now), clock.now)
    second = store.mark_rotated(parent.jti, _child_of(parent, "child-b", clock.now), clock.now)

    assert first is not None and first.jti == "child-a"
    assert second is None
    assert store.find_by_jti("child-b") is None
    assert store.find_by_jti(parent.jti).rotated_to_jti == "child-a"


def test_mark_rotated_refuses_revoked_parent(store, add_record, make_user, clock):
    parent = add_record(make_user())
    assert store.revoke_by_jti(parent.jti, clock.now, RevokeReason.LOGOUT)

    assert store.mark_rotated(parent.jti, _child_of(parent, "child", clock.now), clock.now) is None
    assert store.find_by_jti("child") is None


def test_revoke_family_touches_only_that_family(store, add_record, make_user, clock):
    user_id = make_user()
    root = add_record(user_id)
    store.mark_rotated(root.jti, _child_of(root, "tip", clock.now), clock.now)
    other = add_record(user_id)

    revoked = store.revoke_family(user_id, root.family_id, clock.now, RevokeReason.TOKEN_REUSE)

    # the rotated parent was already revoked; only the tip changes
    assert revoked == 1
    assert store.find_by_jti("tip").revoked_reason == RevokeReason.TOKEN_REUSE.value
    assert store.find_by_jti(root.jti).revoked_reason == RevokeReason.ROTATED.value
    assert store.find_by_jti(other.jti).revoked_at is None
    assert store.revoke_family(user_id, root.family_id, clock.now, RevokeReason.TOKEN_REUSE) == 0


def test_revoke_family_requires_owner_and_family(store, add_record, make_user, clock):
    user_id = make_user()
    record = add_record(user_id)

    assert store.revoke_family(user_id, "", clock.now, RevokeReason.LOGOUT) == 0
    assert store.revoke_family(make_user(), record.family_id, clock.now, RevokeReason.LOGOUT) == 0
    assert store.find_by_jti(record.jti).revoked_at is None


def test_revoke_all_for_user_can_keep_one_family(store, add_record, make_user, clock):
    user_id = make_user()
    keep = add_record(user_id)
    add_record(user_id)
    add_record(user_id)
    stranger = add_record(make_user())

    revoked = store.revoke_all_for_user(user_id, clock.now, RevokeReason.USER_REVOKED, except_family_id=keep.family_id)

    assert revoked == 2
    assert [r.jti for r in store.list_live(user_id, clock.now)] == [keep.jti]
    assert store.find_by_jti(stranger.jti).revoked_at is None


def test_count_live_ignores_expired_revoked_and_capped(store, add_record, make_user, clock):
    user_id = make_user()
    add_record(user_id)
    add_record(user_id, issued_at=clock.now - timedelta(days=8))
    add_record(user_id, revoked_at=clock.now, revoked_reason="logout")
    add_record(user_id, issued_at=clock.now - timedelta(days=1), family_issued_at=clock.now - timedelta(days=40))

    assert store.count_live(user_id, clock.now) == 2
    assert store.count_live(user_id, clock.now, family_issued_after=clock.now - timedelta(days=30)) == 1


def test_find_oldest_live_orders_by_family_start(store, add_record, make_user, clock):
    user_id = make_user()
    newest = add_record(user_id, issued_at=clock.now - timedelta(hours=1))
    # rotated recently but its family began first
    oldest = add_record(user_id, issued_at=clock.now - timedelta(minutes=5), family_issued_at=clock.now - timedelta(days=3))
    middle = add_record(user_id, issued_at=clock.now - timedelta(days=1))

    found = store.find_oldest_live(user_id, 2, clock.now)

    assert [r.jti for r in found] == [oldest.jti, middle.jti]
    assert newest.jti not in [r.jti for r in found]
    assert store.find_oldest_live(user_id, 0, clock.now) == []


def test_purge_removes_dead_records_but_keeps_replay_evidence(store, add_record, make_user, clock):
    user_id = make_user()
    live = add_record(user_id)
    expired = add_record(user_id, issued_at=clock.now - timedelta(days=10))
    old_logout = add_record(user_id, issued_at=clock.now - timedelta(days=1), revoked_at=clock.now - timedelta(days=8))
    recent_logout = add_record(user_id, revoked_at=clock.now - timedelta(hours=1))
    parent = add_record(user_id, issued_at=clock.now - timedelta(days=6))
    store.mark_rotated(parent.jti, _child_of(parent, "child", clock.now), clock.now - timedelta(days=5))

    removed = store.purge(clock.now, expired_grace=timedelta(0), revoked_retention=timedelta(days=7))

    assert removed == 2
    assert store.find_by_jti(expired.jti) is None
    assert store.find_by_jti(old_logout.jti) is None
    for kept in (live.jti, recent_logout.jti, parent.jti, "child"):
        assert store.find_by_jti(kept) is not None


def test_purge_honours_expiry_grace(store, add_record, make_user, clock):
    record = add_record(make_user(), issued_at=clock.now - timedelta(days=7, hours=1))

    assert store.purge(clock.now, expired_grace=timedelta(hours=2), revoked_retention=timedelta(days=7)) == 0
    assert store.find_by_jti(record.jti) is not None


def _transient():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


def test_reads_retry_once_on_transient_errors():
    calls = []

    @read_operation
    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise _transient()
        return "ok"

    assert flaky() == "ok"
    assert len(calls) == 2


def test_reads_fail_closed_after_retry():
    calls = []

    @read_operation
    def down():
        calls.append(1)
        raise _transient()

    with pytest.raises(StoreUnavailableError):
        down()
    assert len(calls) == 2


def test_writes_are_never_retried():
    calls = []

    @write_operation
    def down():
        calls.append(1)
        raise _transient()

    with pytest.raises(StoreUnavailableError):
        down()
    assert len(calls) == 1


def test_non_transient_errors_propagate_unchanged():
    @read_operation
    def broken():
        raise IntegrityError("INSERT", {}, Exception("duplicate key"))

    with pytest.raises(IntegrityError):
        broken()
