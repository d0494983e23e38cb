"""Unit tests for auth/sessions.py -- SessionManager.

Covers:
- sign_up(): input policy, duplicate email -> ConflictError
- login(): unknown email and wrong password fail identically
- login(): refresh row exists before the pair is returned; write failure
  returns no tokens
- refresh(): rotation, single use, wrong-kind token, revoked token
- refresh(): a failure inside the rotation transaction leaves the old token valid
- refresh(): concurrent refreshes of one token -> exactly one success
- refresh(): different tokens of one user rotate independently
- logout(): idempotent; the refresh token stops working
- me(): profile lookup; missing row -> InternalError
"""

import logging
import threading

import pytest
from sqlalchemy.exc import OperationalError

from auth.errors import ConflictError, InternalError, InvalidInputError, UnauthorizedError
from auth.sessions import SessionManager
from auth.store import CredentialStore
from auth.tokens import issue_token, verify_token

EMAIL = "alice@example.com"
PASSWORD = "secret1"


@pytest.fixture
def alice(sessions: SessionManager) -> int:
    return sessions.sign_up(EMAIL, PASSWORD)


class TestSignUp:
    @pytest.mark.parametrize("email,password", [("", "secret1"), ("a@example.com", ""), ("", "")])
    def test_missing_fields(self, sessions: SessionManager, email, password):
        with pytest.raises(InvalidInputError):
            sessions.sign_up(email, password)

    def test_short_password(self, sessions: SessionManager):
        with pytest.raises(InvalidInputError):
            sessions.sign_up(EMAIL, "12345")

    def test_six_characters_is_enough(self, sessions: SessionManager, store: CredentialStore):
        uid = sessions.sign_up(EMAIL, "123456")
        user = store.get_by_id(uid)
        assert user.email == EMAIL
        assert user.password_hash != "123456"

    def test_duplicate_email(self, sessions: SessionManager, alice: int):
        with pytest.raises(ConflictError):
            sessions.sign_up(EMAIL, "another1")


class TestLogin:
    def test_success_returns_pair(self, sessions: SessionManager, store: CredentialStore, settings, alice: int):
        pair = sessions.login(EMAIL, PASSWORD)
        access = verify_token(pair.access_token, settings.access_secret)
        refresh = verify_token(pair.refresh_token, settings.refresh_secret)
        assert access.user_id == refresh.user_id == alice
        assert access.email == EMAIL
        assert pair.expires_at == access.expires_at
        assert 0 < pair.expires_in <= 15 * 60
        row = store.get_refresh_token(pair.refresh_token)
        assert row.expires_at == refresh.expires_at
        assert store.refresh_token_exists(pair.refresh_token, alice)

    def test_unknown_email_and_wrong_password_are_identical(self, sessions: SessionManager, alice: int):
        with pytest.raises(UnauthorizedError) as unknown:
            sessions.login("nobody@example.com", PASSWORD)
        with pytest.raises(UnauthorizedError) as wrong:
            sessions.login(EMAIL, "wrong-password")
        assert type(unknown.value) is type(wrong.value)
        assert unknown.value.message == wrong.value.message
        assert unknown.value.code == wrong.value.code

    def test_email_is_case_sensitive(self, sessions: SessionManager, alice: int):
        with pytest.raises(UnauthorizedError):
            sessions.login("ALICE@example.com", PASSWORD)

    def test_each_login_opens_a_separate_session(self, sessions: SessionManager, store: CredentialStore, alice: int):
        first = sessions.login(EMAIL, PASSWORD)
        second = sessions.login(EMAIL, PASSWORD)
        assert first.refresh_token != second.refresh_token
        assert store.refresh_token_exists(first.refresh_token, alice)
        assert store.refresh_token_exists(second.refresh_token, alice)

    def test_persist_failure_returns_no_tokens(self, sessions: SessionManager, store: CredentialStore, alice, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store, "insert_refresh_token", broken)
        with pytest.raises(InternalError):
            sessions.login(EMAIL, PASSWORD)


class TestRefresh:
    def test_rotation_issues_new_pair(self, sessions: SessionManager, store: CredentialStore, settings, alice: int):
        old = sessions.login(EMAIL, PASSWORD)
        new = sessions.refresh(old.refresh_token)
        assert new.refresh_token != old.refresh_token
        assert verify_token(new.access_token, settings.access_secret).user_id == alice
        assert not store.refresh_token_exists(old.refresh_token, alice)
        assert store.refresh_token_exists(new.refresh_token, alice)

    def test_refresh_token_is_single_use(self, sessions: SessionManager, alice: int):
        old = sessions.login(EMAIL, PASSWORD)
        sessions.refresh(old.refresh_token)
        with pytest.raises(UnauthorizedError):
            sessions.refresh(old.refresh_token)

    def test_chained_rotation(self, sessions: SessionManager, settings, alice: int):
        pair = sessions.login(EMAIL, PASSWORD)
        for _ in range(3):
            pair = sessions.refresh(pair.refresh_token)
        assert verify_token(pair.refresh_token, settings.refresh_secret).user_id == alice

    def test_access_token_is_not_a_refresh_token(self, sessions: SessionManager, alice: int):
        pair = sessions.login(EMAIL, PASSWORD)
        with pytest.raises(UnauthorizedError):
            sessions.refresh(pair.access_token)

    def test_signed_but_unknown_token_rejected(self, sessions: SessionManager, settings, alice: int):
        # Authentic signature, but the store never saw it.
        forged = issue_token(alice, EMAIL, settings.refresh_secret, "1h").token
        with pytest.raises(UnauthorizedError):
            sessions.refresh(forged)

    def test_garbage_rejected(self, sessions: SessionManager):
        with pytest.raises(UnauthorizedError):
            sessions.refresh("not-a-token")

    def test_failed_rotation_keeps_old_token(self, sessions: SessionManager, store: CredentialStore, alice, monkeypatch):
        pair = sessions.login(EMAIL, PASSWORD)
        original_insert = store.insert_refresh_token

        def failing_insert(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(store, "insert_refresh_token", failing_insert)
        with pytest.raises(InternalError):
            sessions.refresh(pair.refresh_token)
        assert store.refresh_token_exists(pair.refresh_token, alice)

        monkeypatch.setattr(store, "insert_refresh_token", original_insert)
        new = sessions.refresh(pair.refresh_token)
        assert new.refresh_token != pair.refresh_token

    def test_concurrent_refresh_single_winner(self, sessions: SessionManager, alice: int):
        pair = sessions.login(EMAIL, PASSWORD)
        workers = 5
        barrier = threading.Barrier(workers)
        outcomes: list[str] = []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                sessions.refresh(pair.refresh_token)
                result = "ok"
            except UnauthorizedError:
                result = "unauthorized"
            except Exception as exc:  # noqa: BLE001 -- recorded and asserted below
                result = f"error: {exc!r}"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["ok"] + ["unauthorized"] * (workers - 1)

    def test_different_tokens_same_user_independent(self, sessions: SessionManager, store: CredentialStore, alice: int):
        first = sessions.login(EMAIL, PASSWORD)
        second = sessions.login(EMAIL, PASSWORD)
        rotated = sessions.refresh(first.refresh_token)
        assert store.refresh_token_exists(second.refresh_token, alice)
        again = sessions.refresh(second.refresh_token)
        assert rotated.refresh_token != again.refresh_token


class TestLogout:
    def test_logout_revokes_refresh_token(self, sessions: SessionManager, alice: int):
        pair = sessions.login(EMAIL, PASSWORD)
        sessions.logout(pair.refresh_token)
        with pytest.raises(UnauthorizedError):
            sessions.refresh(pair.refresh_token)

    def test_logout_is_idempotent(self, sessions: SessionManager, alice: int):
        pair = sessions.login(EMAIL, PASSWORD)
        sessions.logout(pair.refresh_token)
        sessions.logout(pair.refresh_token)
        sessions.logout("never-issued")

    def test_logout_names_the_owner_in_the_log(self, sessions: SessionManager, alice: int, caplog):
        pair = sessions.login(EMAIL, PASSWORD)
        with caplog.at_level(logging.INFO, logger="sessiongate.auth"):
            sessions.logout(pair.refresh_token)
            sessions.logout(pair.refresh_token)
        revoked = [r for r in caplog.records if "revoked" in r.getMessage()]
        assert [r.getMessage() for r in revoked] == [f"Refresh token revoked for user {alice}"]

    def test_access_token_survives_logout(self, sessions: SessionManager, settings, alice: int):
        pair = sessions.login(EMAIL, PASSWORD)
        sessions.logout(pair.refresh_token)
        assert verify_token(pair.access_token, settings.access_secret).user_id == alice


class TestMe:
    def test_returns_profile(self, sessions: SessionManager, alice: int):
        user = sessions.me(alice)
        assert user.id == alice
        assert user.email == EMAIL
        assert user.role == "user"

    def test_missing_user_is_internal_error(self, sessions: SessionManager):
        with pytest.raises(InternalError):
            sessions.me(12345)


def test_purge_expired(sessions: SessionManager, store: CredentialStore, alice: int):
    store.insert_refresh_token(alice, "stale", 1)
    assert sessions.purge_expired() == 1
