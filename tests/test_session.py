"""Tests for :class:`SessionManager`."""

from __future__ import annotations

import json
import threading
import unittest

from vegandex.auth import SessionManager
from vegandex.auth.session import LOGIN_FAILED, REGISTRATION_FAILED, STORAGE_FAILED
from vegandex.exceptions import (
    VegandexAPIError,
    VegandexAuthenticationError,
    VegandexConnectionError,
    VegandexStorageError,
    VegandexTimeoutError,
)
from vegandex.models import SessionStatus, UserProfile

from tests.fakes import ALICE_PROFILE, FakeClient, RecordingStore


def stored_pair(profile=None, token="t1"):
    return {"token": token, "user": json.dumps(profile or ALICE_PROFILE)}


class SessionTestCase(unittest.TestCase):
    def assertPaired(self, manager: SessionManager) -> None:
        self.assertEqual(manager.token is None, manager.profile is None)
        self.assertEqual(
            manager.store.get("token") is None,
            manager.store.get("user") is None,
        )

    def logged_in_manager(self, client=None, store=None) -> SessionManager:
        manager = SessionManager(client or FakeClient(), store if store is not None else RecordingStore())
        manager.initialize()
        self.assertTrue(manager.login("a@b.com", "pw"))
        return manager


class InitializeTests(SessionTestCase):
    def test_starts_initializing_and_not_ready(self) -> None:
        manager = SessionManager(FakeClient(), RecordingStore())
        self.assertEqual(manager.status, SessionStatus.INITIALIZING)
        self.assertFalse(manager.ready.is_set())

    def test_empty_store_is_unauthenticated_without_network(self) -> None:
        client = FakeClient()
        manager = SessionManager(client, RecordingStore())

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertTrue(manager.wait_until_ready(0))
        self.assertEqual(client.calls, [])

    def test_rehydrates_with_fresh_profile(self) -> None:
        fresh = dict(ALICE_PROFILE, uploadedProducts=["p0"])
        client = FakeClient(profile=fresh)
        store = RecordingStore(stored_pair())
        manager = SessionManager(client, store)

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.AUTHENTICATED)
        self.assertEqual(manager.profile.uploaded_products, ("p0",))
        self.assertEqual(json.loads(store.get("user")), fresh)
        self.assertEqual(client.calls, [("fetch_profile", "t1")])
        self.assertEqual(client.auth_token, "t1")
        self.assertTrue(manager.ready.is_set())

    def test_missing_uploaded_products_defaults_to_empty(self) -> None:
        profile = {"_id": "1", "email": "a@b.com", "username": "alice"}
        manager = SessionManager(FakeClient(profile=profile), RecordingStore(stored_pair()))

        manager.initialize()

        self.assertEqual(manager.profile.uploaded_products, ())

    def test_rejected_token_clears_store(self) -> None:
        client = FakeClient(profile_error=VegandexAuthenticationError("expired", status_code=401))
        store = RecordingStore(stored_pair())
        manager = SessionManager(client, store)

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(store.get("token"))
        self.assertIsNone(store.get("user"))
        self.assertIsNone(manager.profile)
        self.assertIn(("remove_all", ("token", "user")), store.writes)
        self.assertTrue(manager.ready.is_set())

    def test_network_failure_clears_store(self) -> None:
        client = FakeClient(profile_error=VegandexConnectionError("Network error. Please check your connection."))
        store = RecordingStore(stored_pair())
        manager = SessionManager(client, store)

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertPaired(manager)
        self.assertIsNone(store.get("token"))

    def test_malformed_profile_clears_store(self) -> None:
        client = FakeClient(profile={"_id": "1", "email": "a@b.com"})
        store = RecordingStore(stored_pair())
        manager = SessionManager(client, store)

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(store.get("user"))

    def test_token_without_user_is_discarded_without_network(self) -> None:
        client = FakeClient()
        store = RecordingStore({"token": "t1"})
        manager = SessionManager(client, store)

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(store.get("token"))
        self.assertEqual(client.calls, [])

    def test_user_without_token_is_discarded(self) -> None:
        store = RecordingStore({"user": json.dumps(ALICE_PROFILE)})
        manager = SessionManager(FakeClient(), store)

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(store.get("user"))

    def test_unreadable_user_is_discarded(self) -> None:
        client = FakeClient()
        store = RecordingStore({"token": "t1", "user": "{not json"})
        manager = SessionManager(client, store)

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(store.get("token"))
        self.assertEqual(client.calls, [])

    def test_store_read_failure_degrades_to_unauthenticated(self) -> None:
        class BrokenStore(RecordingStore):
            def get(self, key):
                raise VegandexStorageError("permission denied")

            def remove_all(self, keys):
                raise VegandexStorageError("permission denied")

        manager = SessionManager(FakeClient(), BrokenStore())

        manager.initialize()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertTrue(manager.ready.is_set())

    def test_second_initialize_is_ignored(self) -> None:
        client = FakeClient()
        manager = SessionManager(client, RecordingStore(stored_pair()))

        manager.initialize()
        manager.initialize()

        self.assertEqual(client.call_names(), ["fetch_profile"])


class LoginTests(SessionTestCase):
    def setUp(self) -> None:
        self.client = FakeClient()
        self.store = RecordingStore()
        self.manager = SessionManager(self.client, self.store)
        self.manager.initialize()

    def test_login_round_trip(self) -> None:
        self.assertTrue(self.manager.login("a@b.com", "pw"))

        self.assertEqual(self.manager.status, SessionStatus.AUTHENTICATED)
        self.assertEqual(self.manager.profile.username, "alice")
        self.assertEqual(self.manager.token, "t1")
        self.assertEqual(self.store.get("token"), "t1")
        self.assertEqual(json.loads(self.store.get("user"))["username"], "alice")
        self.assertEqual(self.client.call_names(), ["login", "fetch_profile"])
        self.assertEqual(self.client.auth_token, "t1")
        self.assertIsNone(self.manager.last_error)

    def test_token_is_written_before_profile_fetch(self) -> None:
        self.manager.login("a@b.com", "pw")

        self.assertEqual(self.store.writes, [("set", "token"), ("set", "user")])

    def test_missing_token_is_rejected_without_store_write(self) -> None:
        self.client.login_response = {"_id": "1", "email": "a@b.com", "username": "alice"}

        self.assertFalse(self.manager.login("a@b.com", "pw"))

        self.assertEqual(self.manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertEqual(self.store.writes, [])
        self.assertEqual(self.manager.last_error, "Invalid response: missing token")
        self.assertNotIn("fetch_profile", self.client.call_names())

    def test_non_string_token_is_rejected_without_store_write(self) -> None:
        self.client.login_response = {"token": 12345, "_id": "1", "email": "a@b.com", "username": "alice"}

        self.assertFalse(self.manager.login("a@b.com", "pw"))

        self.assertEqual(self.manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(self.manager.token)
        self.assertEqual(self.store.writes, [])
        self.assertEqual(self.manager.last_error, "Invalid response: missing token")

    def test_server_message_becomes_last_error(self) -> None:
        self.client.login_error = VegandexAuthenticationError(
            "Invalid email or password", status_code=401, server_message="Invalid email or password"
        )

        self.assertFalse(self.manager.login("a@b.com", "wrong"))

        self.assertEqual(self.manager.last_error, "Invalid email or password")
        self.assertEqual(self.manager.status, SessionStatus.UNAUTHENTICATED)

    def test_generic_message_without_server_message(self) -> None:
        self.client.login_error = VegandexAPIError("API Error: 500 Internal Server Error", status_code=500)

        self.assertFalse(self.manager.login("a@b.com", "pw"))

        self.assertEqual(self.manager.last_error, LOGIN_FAILED)

    def test_timeout_has_its_own_message(self) -> None:
        self.client.login_error = VegandexTimeoutError("Request timed out. Please try again.")

        self.assertFalse(self.manager.login("a@b.com", "pw"))

        self.assertEqual(self.manager.last_error, "Request timed out. Please try again.")

    def test_profile_failure_rolls_back_token(self) -> None:
        self.client.profile_error = VegandexConnectionError("Network error. Please check your connection.")

        self.assertFalse(self.manager.login("a@b.com", "pw"))

        self.assertEqual(self.manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(self.store.get("token"))
        self.assertIsNone(self.manager.token)
        self.assertEqual(self.manager.last_error, "Network error. Please check your connection.")
        self.assertPaired(self.manager)

    def test_profile_write_failure_rolls_back_token(self) -> None:
        self.store.fail_on_set = "user"

        self.assertFalse(self.manager.login("a@b.com", "pw"))

        self.assertEqual(self.manager.last_error, STORAGE_FAILED)
        self.assertIsNone(self.store.get("token"))
        self.assertPaired(self.manager)

    def test_new_attempt_clears_previous_error(self) -> None:
        self.client.login_error = VegandexConnectionError("Network error. Please check your connection.")
        self.manager.login("a@b.com", "pw")
        self.client.login_error = None

        self.assertTrue(self.manager.login("a@b.com", "pw"))

        self.assertIsNone(self.manager.last_error)

    def test_concurrent_logins_leave_a_consistent_session(self) -> None:
        threads = [threading.Thread(target=self.manager.login, args=("a@b.com", "pw")) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(self.manager.status, SessionStatus.AUTHENTICATED)
        self.assertPaired(self.manager)
        self.assertEqual(self.client.call_names(), ["login", "fetch_profile"] * 4)


class RegisterTests(SessionTestCase):
    def test_register_uses_canonical_profile(self) -> None:
        client = FakeClient(register_response={
            "token": "t2",
            "user": {"_id": "9", "email": "x@y.com", "username": "inline"},
        })
        store = RecordingStore()
        manager = SessionManager(client, store)
        manager.initialize()

        self.assertTrue(manager.register("alice", "a@b.com", "pw"))

        self.assertEqual(manager.profile.username, "alice")
        self.assertEqual(manager.token, "t2")
        self.assertEqual(store.get("token"), "t2")
        self.assertEqual(client.calls, [("register", "alice", "a@b.com"), ("fetch_profile", "t2")])

    def test_register_failure_reports_server_message(self) -> None:
        client = FakeClient(register_error=VegandexAPIError(
            "User already exists", status_code=400, server_message="User already exists"
        ))
        manager = SessionManager(client, RecordingStore())
        manager.initialize()

        self.assertFalse(manager.register("alice", "a@b.com", "pw"))

        self.assertEqual(manager.last_error, "User already exists")
        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)

    def test_register_failure_generic_message(self) -> None:
        client = FakeClient(register_error=VegandexAPIError("API Error: 502 Bad Gateway", status_code=502))
        manager = SessionManager(client, RecordingStore())
        manager.initialize()

        self.assertFalse(manager.register("alice", "a@b.com", "pw"))

        self.assertEqual(manager.last_error, REGISTRATION_FAILED)


class LogoutTests(SessionTestCase):
    def test_logout_clears_everything(self) -> None:
        client = FakeClient()
        manager = self.logged_in_manager(client)

        manager.logout()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(manager.store.get("token"))
        self.assertIsNone(manager.store.get("user"))
        self.assertIsNone(client.auth_token)
        self.assertIn(("logout", "t1"), client.calls)

    def test_logout_is_best_effort(self) -> None:
        client = FakeClient(logout_error=VegandexConnectionError("Network error. Please check your connection."))
        manager = self.logged_in_manager(client)

        manager.logout()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(manager.store.get("token"))
        self.assertIsNone(manager.store.get("user"))
        self.assertPaired(manager)

    def test_logout_survives_storage_failure(self) -> None:
        class StickyStore(RecordingStore):
            def remove_all(self, keys):
                raise VegandexStorageError("read-only filesystem")

        manager = self.logged_in_manager(store=StickyStore())

        manager.logout()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(manager.token)

    def test_logout_before_initialize_clears_stored_session(self) -> None:
        client = FakeClient()
        store = RecordingStore(stored_pair())
        manager = SessionManager(client, store)

        manager.logout()

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertIsNone(store.get("token"))
        self.assertIsNone(store.get("user"))
        self.assertTrue(manager.ready.is_set())
        self.assertEqual(client.calls, [])

        manager.initialize()
        self.assertEqual(client.calls, [])

    def test_logout_when_logged_out_is_a_no_op(self) -> None:
        client = FakeClient()
        manager = SessionManager(client, RecordingStore())
        manager.initialize()
        before = manager.snapshot()

        manager.logout()
        manager.logout()

        self.assertEqual(manager.snapshot(), before)
        self.assertEqual(client.calls, [])


class RecordUploadedProductTests(SessionTestCase):
    def test_ignored_when_logged_out(self) -> None:
        store = RecordingStore()
        manager = SessionManager(FakeClient(), store)
        manager.initialize()

        manager.record_uploaded_product("p1")

        self.assertIsNone(manager.profile)
        self.assertEqual(store.writes, [])

    def test_append_is_copy_on_write(self) -> None:
        manager = self.logged_in_manager()
        old_profile = manager.profile

        manager.record_uploaded_product("p1")
        manager.record_uploaded_product("p2")

        self.assertEqual(old_profile.uploaded_products, ())
        self.assertEqual(manager.profile.uploaded_products, ("p1", "p2"))
        self.assertEqual(json.loads(manager.store.get("user"))["uploadedProducts"], ["p1", "p2"])

    def test_does_not_call_server(self) -> None:
        client = FakeClient()
        manager = self.logged_in_manager(client)
        calls_before = list(client.calls)

        manager.record_uploaded_product("p1")

        self.assertEqual(client.calls, calls_before)

    def test_storage_failure_is_swallowed(self) -> None:
        manager = self.logged_in_manager()
        manager.store.fail_on_set = "user"

        manager.record_uploaded_product("p1")

        self.assertEqual(manager.profile.uploaded_products, ("p1",))


class RefreshProfileTests(SessionTestCase):
    def test_refresh_updates_profile(self) -> None:
        client = FakeClient()
        manager = self.logged_in_manager(client)
        client.profile = dict(ALICE_PROFILE, username="alice2")

        self.assertTrue(manager.refresh_profile())

        self.assertEqual(manager.profile.username, "alice2")
        self.assertEqual(json.loads(manager.store.get("user"))["username"], "alice2")

    def test_rejected_token_ends_session(self) -> None:
        client = FakeClient()
        manager = self.logged_in_manager(client)
        client.profile_error = VegandexAuthenticationError("jwt expired", status_code=401, server_message="jwt expired")

        self.assertFalse(manager.refresh_profile())

        self.assertEqual(manager.status, SessionStatus.UNAUTHENTICATED)
        self.assertEqual(manager.last_error, "jwt expired")
        self.assertPaired(manager)

    def test_network_failure_keeps_session(self) -> None:
        client = FakeClient()
        manager = self.logged_in_manager(client)
        client.profile_error = VegandexConnectionError("Network error. Please check your connection.")

        self.assertFalse(manager.refresh_profile())

        self.assertEqual(manager.status, SessionStatus.AUTHENTICATED)
        self.assertEqual(manager.profile, UserProfile.from_api(ALICE_PROFILE))
        self.assertEqual(manager.last_error, "Network error. Please check your connection.")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
