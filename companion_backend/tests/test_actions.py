import unittest
from unittest.mock import MagicMock

from companion_backend import actions
from companion_backend.db import InMemoryDbClient, NewCompanion, StoreErrorKind
from companion_backend.identity import Caller
from companion_backend.permissions import QuotaPolicy
from companion_backend.results import ErrorKind, Failure, Success
from companion_backend.revalidation import InMemoryRevalidator


def _form(name="Neura", subject="science", topic="The neural network of the brain"):
    return NewCompanion(name=name, subject=subject, topic=topic, voice="male", style="formal")


class ActionTestCase(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.revalidator = InMemoryRevalidator()
        self.caller = Caller(user_id="user_1")

    def create(self, name, caller=None, **kwargs):
        result = actions.create_companion(
            self.db, caller or self.caller, self.revalidator, _form(name, **kwargs)
        )
        self.assertIsInstance(result, Success)
        return result.data


class CompanionActionTests(ActionTestCase):
    def test_create_twice_conflicts_on_name(self):
        first = actions.create_companion(self.db, self.caller, self.revalidator, _form("X"))
        self.assertTrue(first.success)
        self.assertTrue(first.data.id)
        self.assertEqual(first.data.author, "user_1")

        second = actions.create_companion(self.db, self.caller, self.revalidator, _form("X"))
        self.assertIsInstance(second, Failure)
        self.assertEqual(second.kind, ErrorKind.CONFLICT)
        self.assertEqual(second.message, actions.DUPLICATE_COMPANION_MESSAGE)

    def test_create_revalidates_home(self):
        self.create("Neura")
        self.assertEqual(self.revalidator.paths, ["/"])

    def test_create_requires_caller_before_store_call(self):
        result = actions.create_companion(self.db, None, self.revalidator, _form())
        self.assertEqual(result.kind, ErrorKind.AUTH_REQUIRED)
        self.assertEqual(result.message, "Authentication required.")
        self.assertEqual(self.db.calls, [])
        self.assertEqual(self.revalidator.paths, [])

    def test_create_store_error_is_generic(self):
        self.db.fail_next(StoreErrorKind.TRANSPORT, "connection reset by peer")
        result = actions.create_companion(self.db, self.caller, self.revalidator, _form())
        self.assertEqual(result.kind, ErrorKind.STORE_ERROR)
        self.assertEqual(result.message, "Database error: Failed to create companion.")
        self.assertNotIn("connection reset", result.message)

    def test_revalidation_failure_does_not_fail_create(self):
        revalidator = MagicMock()
        revalidator.revalidate.side_effect = RuntimeError("bus down")
        result = actions.create_companion(self.db, self.caller, revalidator, _form())
        self.assertTrue(result.success)

    def test_get_all_with_limit_returns_first_rows(self):
        created = [self.create(name) for name in "ABCDE"]
        result = actions.get_all_companions(self.db, limit=3)
        self.assertTrue(result.success)
        self.assertEqual([c.id for c in result.data], [c.id for c in created[:3]])

    def test_get_all_filters(self):
        self.create("Countsy", subject="maths", topic="Derivatives and integrals")
        self.create("Verba", subject="language", topic="English literature")
        self.create("Lexi", subject="language", topic="Spanish verbs")

        by_subject = actions.get_all_companions(self.db, subject="LANG")
        self.assertEqual(sorted(c.name for c in by_subject.data), ["Lexi", "Verba"])

        by_topic = actions.get_all_companions(self.db, topic="lexi")
        self.assertEqual([c.name for c in by_topic.data], ["Lexi"])

        both = actions.get_all_companions(self.db, subject="language", topic="english")
        self.assertEqual([c.name for c in both.data], ["Verba"])

    def test_get_all_empty_store_is_success(self):
        result = actions.get_all_companions(self.db)
        self.assertEqual(result, Success([]))

    def test_get_all_invalid_paging(self):
        result = actions.get_all_companions(self.db, page=0)
        self.assertEqual(result.kind, ErrorKind.INVALID_INPUT)
        self.assertEqual(self.db.calls, [])

    def test_get_all_store_error(self):
        self.db.fail_next()
        result = actions.get_all_companions(self.db)
        self.assertEqual(result, Failure("Failed to fetch companions.", ErrorKind.STORE_ERROR))

    def test_get_companion_not_found(self):
        result = actions.get_companion(self.db, "missing")
        self.assertEqual(result.kind, ErrorKind.NOT_FOUND)
        self.assertEqual(result.message, "Companion not found.")

    def test_get_companion_store_error(self):
        self.db.fail_next()
        result = actions.get_companion(self.db, "any")
        self.assertEqual(result.kind, ErrorKind.STORE_ERROR)
        self.assertEqual(result.message, "Failed to fetch companion data.")

    def test_get_user_companions(self):
        self.create("Mine")
        self.create("Theirs", caller=Caller(user_id="user_2"))
        result = actions.get_user_companions(self.db, self.caller)
        self.assertEqual([c.name for c in result.data], ["Mine"])

    def test_unexpected_exception_becomes_failure(self):
        db = MagicMock()
        db.select_companions.side_effect = RuntimeError("boom")
        with self.assertLogs("companion_backend.actions", level="ERROR"):
            result = actions.get_all_companions(db)
        self.assertEqual(result, Failure("An unexpected error occurred.", ErrorKind.UNEXPECTED))


class SessionActionTests(ActionTestCase):
    def test_add_and_list_sessions(self):
        first = self.create("First")
        second = self.create("Second")
        actions.add_to_session_history(self.db, self.caller, first.id)
        actions.add_to_session_history(self.db, Caller(user_id="user_2"), second.id)

        recent = actions.get_recent_sessions(self.db, 10)
        self.assertEqual([c.name for c in recent.data], ["Second", "First"])

        mine = actions.get_user_sessions(self.db, self.caller)
        self.assertEqual([c.name for c in mine.data], ["First"])

    def test_add_session_requires_caller(self):
        result = actions.add_to_session_history(self.db, None, "abc")
        self.assertEqual(result.kind, ErrorKind.AUTH_REQUIRED)
        self.assertEqual(result.message, "Authentication required to start a session.")
        self.assertEqual(self.db.calls, [])

    def test_user_sessions_requires_caller(self):
        result = actions.get_user_sessions(self.db, None)
        self.assertEqual(result.kind, ErrorKind.AUTH_REQUIRED)
        self.assertEqual(self.db.calls, [])

    def test_recent_sessions_drop_missing_companions(self):
        kept = self.create("Kept")
        actions.add_to_session_history(self.db, self.caller, kept.id)
        actions.add_to_session_history(self.db, self.caller, "deleted-companion")

        recent = actions.get_recent_sessions(self.db)
        self.assertEqual([c.name for c in recent.data], ["Kept"])
        mine = actions.get_user_sessions(self.db, self.caller)
        self.assertNotIn(None, mine.data)

    def test_non_positive_session_limit_is_rejected(self):
        for limit in (0, -1):
            recent = actions.get_recent_sessions(self.db, limit)
            mine = actions.get_user_sessions(self.db, self.caller, limit)
            for result in (recent, mine):
                self.assertEqual(
                    result,
                    Failure("Invalid pagination parameters.", ErrorKind.INVALID_INPUT),
                )
        self.assertEqual(self.db.calls, [])

    def test_recent_sessions_store_error(self):
        self.db.fail_next()
        result = actions.get_recent_sessions(self.db)
        self.assertEqual(result.message, "Failed to fetch recent sessions.")


class BookmarkActionTests(ActionTestCase):
    def test_add_bookmark_twice_conflicts(self):
        companion = self.create("Neura")
        first = actions.add_bookmark(self.db, self.caller, self.revalidator, companion.id, "/companions")
        self.assertEqual(first, Success(None))
        second = actions.add_bookmark(self.db, self.caller, self.revalidator, companion.id, "/companions")
        self.assertEqual(second.kind, ErrorKind.CONFLICT)
        self.assertEqual(second.message, "This companion is already bookmarked.")
        self.assertEqual(self.revalidator.paths, ["/", "/companions"])

    def test_bookmark_requires_caller(self):
        added = actions.add_bookmark(self.db, None, self.revalidator, "c1", "/")
        removed = actions.remove_bookmark(self.db, None, self.revalidator, "c1", "/")
        listed = actions.get_bookmarked_companions(self.db, None)
        self.assertEqual(added.message, "You must be logged in to add a bookmark.")
        self.assertEqual(removed.message, "You must be logged in to remove a bookmark.")
        self.assertEqual(listed.kind, ErrorKind.AUTH_REQUIRED)
        self.assertEqual(self.db.calls, [])

    def test_remove_bookmark(self):
        companion = self.create("Neura")
        actions.add_bookmark(self.db, self.caller, self.revalidator, companion.id, "/")
        result = actions.remove_bookmark(self.db, self.caller, self.revalidator, companion.id, "/library")
        self.assertTrue(result.success)
        self.assertEqual(actions.get_bookmarked_companions(self.db, self.caller).data, [])
        self.assertEqual(self.revalidator.paths[-1], "/library")

    def test_remove_bookmark_store_error_skips_revalidation(self):
        self.db.fail_next()
        result = actions.remove_bookmark(self.db, self.caller, self.revalidator, "c1", "/library")
        self.assertEqual(result.message, "Failed to remove bookmark.")
        self.assertEqual(self.revalidator.paths, [])

    def test_bookmarked_companions_drop_missing(self):
        kept = self.create("Kept")
        actions.add_bookmark(self.db, self.caller, self.revalidator, kept.id, "/")
        actions.add_bookmark(self.db, self.caller, self.revalidator, "gone", "/")
        result = actions.get_bookmarked_companions(self.db, self.caller)
        self.assertEqual([c.name for c in result.data], ["Kept"])


class PermissionActionTests(ActionTestCase):
    def _fill(self, count, caller=None):
        for i in range(count):
            self.create(f"Companion {i}", caller=caller)

    def test_pro_plan_is_unlimited_without_count(self):
        caller = Caller(user_id="user_1", plan="pro")
        result = actions.check_companion_creation_permissions(self.db, caller)
        self.assertEqual(result, Success(True))
        self.assertEqual(self.db.calls, [])

    def test_unlimited_permission(self):
        self._fill(12)
        caller = Caller(
            user_id="user_1", permissions=frozenset({"org:feature:unlimited_companions"})
        )
        self.assertEqual(actions.new_companion_permissions(self.db, caller), Success(True))

    def test_default_limit_reached(self):
        self._fill(5)
        check = actions.check_companion_creation_permissions(self.db, self.caller)
        self.assertEqual(check, Success(False))

        gate = actions.new_companion_permissions(self.db, self.caller)
        self.assertEqual(gate.kind, ErrorKind.LIMIT_REACHED)
        self.assertEqual(gate.message, "Companion limit reached.")

    def test_no_flag_and_no_companions_is_allowed(self):
        self.assertEqual(actions.new_companion_permissions(self.db, self.caller), Success(True))

    def test_feature_flag_limits(self):
        self._fill(3)
        small = Caller(user_id="user_1", features=frozenset({"3_companion_limit"}))
        large = Caller(user_id="user_1", features=frozenset({"10_companion_limit"}))
        self.assertEqual(actions.check_companion_creation_permissions(self.db, small), Success(False))
        self.assertEqual(actions.check_companion_creation_permissions(self.db, large), Success(True))

    def test_custom_policy(self):
        self._fill(1)
        policy = QuotaPolicy(default_limit=1)
        result = actions.new_companion_permissions(self.db, self.caller, policy)
        self.assertEqual(result.kind, ErrorKind.LIMIT_REACHED)

    def test_requires_caller(self):
        for check in (
            actions.check_companion_creation_permissions,
            actions.new_companion_permissions,
        ):
            result = check(self.db, None)
            self.assertEqual(result.kind, ErrorKind.AUTH_REQUIRED)
        self.assertEqual(self.db.calls, [])

    def test_count_failure(self):
        self.db.fail_next()
        result = actions.new_companion_permissions(self.db, self.caller)
        self.assertEqual(result.message, "Could not verify your companion limit.")
        self.assertEqual(result.kind, ErrorKind.STORE_ERROR)

    def test_unexpected_error_message(self):
        db = MagicMock()
        db.count_companions_by_author.side_effect = ValueError("bad")
        with self.assertLogs("companion_backend.actions", level="ERROR"):
            result = actions.check_companion_creation_permissions(db, self.caller)
        self.assertEqual(
            result.message, "An unexpected error occurred while checking permissions."
        )


if __name__ == "__main__":
    unittest.main()
