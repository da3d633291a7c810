import unittest

from google.api_core import exceptions as gexc

from backend.services.scoring_service.errors import ConflictError
from backend.services.scoring_service.models import EvaluatedAnswer, Progress, Result
from backend.services.scoring_service.store import FirestoreScoringStore, MemoryScoringStore

from .fixtures import at


class _FakeDb:
    def __init__(self):
        self.attempts = None

    def transaction(self, max_attempts):
        self.attempts = max_attempts
        return object()


def failing(exc):
    def fn(transaction):
        raise exc
    return fn


def make_result(user_id="u1", day=10):
    return Result(
        quiz_id="cardio", user_id=user_id, score=1, total_questions=2,
        answers=[EvaluatedAnswer("q1", "Option B", True, 3.0)],
        time_spent=3.0, completed_at=at(day),
    )


class FirestoreConflictTests(unittest.TestCase):
    def test_exhausted_retries_become_conflict(self):
        db = _FakeDb()
        store = FirestoreScoringStore(db=db, max_attempts=3)
        with self.assertRaises(ConflictError) as ctx:
            store._run(failing(ValueError("Failed to commit transaction in 3 attempts.")), "progress:u1")
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(db.attempts, 3)

    def test_aborted_becomes_conflict(self):
        store = FirestoreScoringStore(db=_FakeDb())
        with self.assertRaises(ConflictError):
            store._run(failing(gexc.Aborted("contention")), "analytics:q")

    def test_other_errors_propagate(self):
        store = FirestoreScoringStore(db=_FakeDb())
        with self.assertRaises(ValueError):
            store._run(failing(ValueError("bad field")), "progress:u1")


class MemoryStoreTests(unittest.TestCase):
    def test_results_most_recent_first(self):
        store = MemoryScoringStore()
        for day in (3, 9, 5):
            store.add_result(make_result(day=day))
        store.add_result(make_result(user_id="u2", day=30))

        self.assertEqual([r.completed_at.day for r in store.list_results("u1")], [9, 5, 3])
        self.assertEqual(store.latest_result("cardio", "u1").completed_at.day, 9)

    def test_quiz_results_cover_every_user(self):
        store = MemoryScoringStore()
        store.add_result(make_result(user_id="u1", day=3))
        store.add_result(make_result(user_id="u2", day=7))
        other = make_result(day=9)
        other.quiz_id = "renal"
        store.add_result(other)

        found = store.list_quiz_results("cardio")
        self.assertEqual([(r.user_id, r.completed_at.day) for r in found], [("u2", 7), ("u1", 3)])

    def test_failed_mutation_leaves_state_and_flag_untouched(self):
        store = MemoryScoringStore()
        result = store.add_result(make_result())

        def explode(progress):
            progress.xp = 999
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            store.update_progress("u1", explode, result_id=result.id)
        self.assertEqual(store.get_progress("u1").xp, 0)
        self.assertFalse(store.get_result(result.id).progress_applied)

        applied, _ = store.update_progress("u1", lambda p: None, result_id=result.id)
        self.assertTrue(applied)
        self.assertEqual(store.update_progress("u1", lambda p: None, result_id=result.id), (False, None))

    def test_default_daily_goal(self):
        self.assertEqual(MemoryScoringStore(default_daily_goal=25).get_progress("new").daily_goal, 25)


class ProgressDocumentTests(unittest.TestCase):
    def test_loading_repairs_invariants(self):
        first = {"id": "quiz-1", "name": "Quiz Taker", "description": "", "category": "quiz",
                 "icon": "", "unlockedAt": "2026-03-01T10:00:00Z"}
        duplicate = dict(first, unlockedAt="2026-03-05T10:00:00Z")
        p = Progress.from_dict({
            "xp": 150,
            "currentStreak": 5,
            "longestStreak": 2,
            "lastActiveDate": "2026-03-04",
            "achievements": [first, duplicate],
        })
        self.assertEqual(p.longest_streak, 5)
        self.assertEqual(p.level, 2)
        self.assertEqual(list(p.achievements), ["quiz-1"])
        self.assertEqual(p.achievements["quiz-1"].unlocked_at.day, 1)
        self.assertEqual(p.to_dict()["lastActiveDate"], "2026-03-04")


if __name__ == "__main__":
    unittest.main()
