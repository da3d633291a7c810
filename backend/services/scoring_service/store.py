"""
Persistence for quizzes, results, progress and quiz analytics.

Two implementations share one interface:
- FirestoreScoringStore: production; read-modify-write runs inside Firestore
  transactions (optimistic concurrency, retried by the client library).
- MemoryScoringStore: local development and tests; read-modify-write runs
  under a per-entity lock.

Firestore layout:
    quizzes/{quizId}
    quiz_results/{resultId}
    users/{uid}/profile/gamification
    quiz_analytics/{quizId}

Secondary effects of a result (progress, analytics) set a flag on the result
document in the same transaction, so applying them twice is a no-op.
"""

from __future__ import annotations
import copy
import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from firebase_admin import firestore
from google.api_core import exceptions as gexc

from ...config import Config
from ..firebase import get_db
from .errors import ConflictError
from .models import AnalyticsAggregate, Progress, Quiz, Result

logger = logging.getLogger(__name__)

PROGRESS_FLAG = "progressApplied"
ANALYTICS_FLAG = "analyticsApplied"

ProgressMutation = Callable[[Progress], Any]
AnalyticsFold = Callable[[AnalyticsAggregate], AnalyticsAggregate]


class ScoringStore:
    """Interface used by the scoring service."""

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        raise NotImplementedError

    def latest_result(self, quiz_id: str, user_id: str) -> Optional[Result]:
        """Most recent result by completion time for (quiz, user)."""
        raise NotImplementedError

    def add_result(self, result: Result) -> Result:
        """Persist a new result; returns it with `id` set."""
        raise NotImplementedError

    def get_result(self, result_id: str) -> Optional[Result]:
        raise NotImplementedError

    def list_results(self, user_id: str, quiz_id: Optional[str] = None) -> List[Result]:
        """User's results, most recent first."""
        raise NotImplementedError

    def list_quiz_results(self, quiz_id: str) -> List[Result]:
        """Every user's results for one quiz, most recent first."""
        raise NotImplementedError

    def get_progress(self, user_id: str) -> Progress:
        raise NotImplementedError

    def update_progress(
        self, user_id: str, mutate: ProgressMutation, result_id: Optional[str] = None
    ) -> Tuple[bool, Any]:
        """
        Serialized read-modify-write of a user's progress.
        `mutate` changes the Progress in place and returns a payload.
        Returns (applied, payload); applied is False when `result_id`
        already had its progress applied.
        """
        raise NotImplementedError

    def get_analytics(self, quiz_id: str) -> AnalyticsAggregate:
        raise NotImplementedError

    def update_analytics(
        self, quiz_id: str, fold: AnalyticsFold, result_id: Optional[str] = None
    ) -> Tuple[bool, Optional[AnalyticsAggregate]]:
        """
        Serialized read-modify-write of a quiz's analytics.
        `fold` returns the new aggregate, which is persisted.
        """
        raise NotImplementedError

# ============================================================================
# Firestore
# ============================================================================

class FirestoreScoringStore(ScoringStore):
    def __init__(self, db=None, max_attempts: int = 5, default_daily_goal: int = 10):
        self._db = db
        self.max_attempts = max_attempts
        self.default_daily_goal = default_daily_goal

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    # ---- references ----

    def _quiz_ref(self, quiz_id: str):
        return self.db.collection("quizzes").document(quiz_id)

    def _results(self):
        return self.db.collection("quiz_results")

    def _progress_ref(self, uid: str):
        """Reference to user's gamification document"""
        return self.db.collection("users").document(uid).collection("profile").document("gamification")

    def _analytics_ref(self, quiz_id: str):
        return self.db.collection("quiz_analytics").document(quiz_id)

    # ---- reads ----

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        snap = self._quiz_ref(quiz_id).get()
        if not snap.exists:
            return None
        return Quiz.from_dict(snap.id, snap.to_dict() or {})

    def latest_result(self, quiz_id: str, user_id: str) -> Optional[Result]:
        q = (self._results()
             .where("quizId", "==", quiz_id)
             .where("userId", "==", user_id)
             .order_by("completedAt", direction=firestore.Query.DESCENDING)
             .limit(1))
        for doc in q.stream():
            return Result.from_dict(doc.to_dict() or {}, result_id=doc.id)
        return None

    def get_result(self, result_id: str) -> Optional[Result]:
        snap = self._results().document(result_id).get()
        if not snap.exists:
            return None
        return Result.from_dict(snap.to_dict() or {}, result_id=snap.id)

    def list_results(self, user_id: str, quiz_id: Optional[str] = None) -> List[Result]:
        q = self._results().where("userId", "==", user_id)
        if quiz_id:
            q = q.where("quizId", "==", quiz_id)
        q = q.order_by("completedAt", direction=firestore.Query.DESCENDING)
        return [Result.from_dict(d.to_dict() or {}, result_id=d.id) for d in q.stream()]

    def list_quiz_results(self, quiz_id: str) -> List[Result]:
        q = (self._results()
             .where("quizId", "==", quiz_id)
             .order_by("completedAt", direction=firestore.Query.DESCENDING))
        return [Result.from_dict(d.to_dict() or {}, result_id=d.id) for d in q.stream()]

    def get_progress(self, user_id: str) -> Progress:
        snap = self._progress_ref(user_id).get()
        return Progress.from_dict(snap.to_dict() if snap.exists else None, self.default_daily_goal)

    def get_analytics(self, quiz_id: str) -> AnalyticsAggregate:
        snap = self._analytics_ref(quiz_id).get()
        return AnalyticsAggregate.from_dict(quiz_id, snap.to_dict() if snap.exists else None)

    # ---- writes ----

    def add_result(self, result: Result) -> Result:
        ref = self._results().document()
        data = result.to_dict()
        data["createdAt"] = firestore.SERVER_TIMESTAMP
        ref.set(data)
        result.id = ref.id
        return result

    def update_progress(self, user_id, mutate, result_id=None):
        prog_ref = self._progress_ref(user_id)
        result_ref = self._results().document(result_id) if result_id else None

        # Use transaction for atomic read-modify-write
        @firestore.transactional
        def update_in_transaction(transaction):
            # All reads happen before any write
            if result_ref is not None and _flag_set(result_ref, transaction, PROGRESS_FLAG):
                return False, None

            snap = prog_ref.get(transaction=transaction)
            progress = Progress.from_dict(snap.to_dict() if snap.exists else None, self.default_daily_goal)
            payload = mutate(progress)

            data = progress.to_dict()
            data["updatedAt"] = firestore.SERVER_TIMESTAMP
            transaction.set(prog_ref, data)
            if result_ref is not None:
                transaction.update(result_ref, {PROGRESS_FLAG: True})
            return True, payload

        return self._run(update_in_transaction, f"progress:{user_id}")

    def update_analytics(self, quiz_id, fold, result_id=None):
        agg_ref = self._analytics_ref(quiz_id)
        result_ref = self._results().document(result_id) if result_id else None

        @firestore.transactional
        def update_in_transaction(transaction):
            if result_ref is not None and _flag_set(result_ref, transaction, ANALYTICS_FLAG):
                return False, None

            snap = agg_ref.get(transaction=transaction)
            current = AnalyticsAggregate.from_dict(quiz_id, snap.to_dict() if snap.exists else None)
            updated = fold(current)

            data = updated.to_dict()
            data["updatedAt"] = firestore.SERVER_TIMESTAMP
            transaction.set(agg_ref, data)
            if result_ref is not None:
                transaction.update(result_ref, {ANALYTICS_FLAG: True})
            return True, updated

        return self._run(update_in_transaction, f"analytics:{quiz_id}")

    def _run(self, fn, entity: str):
        transaction = self.db.transaction(max_attempts=self.max_attempts)
        try:
            return fn(transaction)
        except gexc.Aborted as e:
            logger.warning("Transaction aborted for %s: %s", entity, e)
            raise ConflictError(f"Concurrent update on {entity}; try again") from e
        except ValueError as e:
            # The client library reports exhausted retries as ValueError
            if "Failed to commit transaction" not in str(e):
                raise
            logger.warning("Gave up on %s after %d attempts", entity, self.max_attempts)
            raise ConflictError(f"Concurrent update on {entity}; try again") from e


def _flag_set(ref, transaction, flag: str) -> bool:
    snap = ref.get(transaction=transaction)
    return snap.exists and bool((snap.to_dict() or {}).get(flag))

# ============================================================================
# In-memory
# ============================================================================

class MemoryScoringStore(ScoringStore):
    """Thread-safe in-process store with the same semantics as Firestore."""

    def __init__(self, default_daily_goal: int = 10):
        self.default_daily_goal = default_daily_goal
        self._quizzes: Dict[str, Dict[str, Any]] = {}
        self._results: Dict[str, Dict[str, Any]] = {}
        self._progress: Dict[str, Dict[str, Any]] = {}
        self._analytics: Dict[str, Dict[str, Any]] = {}
        self._guard = threading.Lock()
        # One lock per user and per quiz, kept for the life of the store
        self._locks: Dict[str, threading.Lock] = {}
        self._ids = itertools.count(1)

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def put_quiz(self, quiz_id: str, data: Dict[str, Any]) -> None:
        with self._guard:
            self._quizzes[quiz_id] = copy.deepcopy(data)

    def get_quiz(self, quiz_id):
        with self._guard:
            data = copy.deepcopy(self._quizzes.get(quiz_id))
        return Quiz.from_dict(quiz_id, data) if data is not None else None

    def latest_result(self, quiz_id, user_id):
        results = self.list_results(user_id, quiz_id)
        return results[0] if results else None

    def add_result(self, result):
        with self._guard:
            result.id = f"result-{next(self._ids)}"
            self._results[result.id] = result.to_dict()
        return result

    def get_result(self, result_id):
        with self._guard:
            data = copy.deepcopy(self._results.get(result_id))
        return Result.from_dict(data, result_id=result_id) if data is not None else None

    def list_results(self, user_id, quiz_id=None):
        with self._guard:
            matches = [
                (rid, copy.deepcopy(data)) for rid, data in self._results.items()
                if data["userId"] == user_id and (not quiz_id or data["quizId"] == quiz_id)
            ]
        results = [Result.from_dict(data, result_id=rid) for rid, data in matches]
        results.sort(key=lambda r: r.completed_at, reverse=True)
        return results

    def list_quiz_results(self, quiz_id):
        with self._guard:
            matches = [
                (rid, copy.deepcopy(data)) for rid, data in self._results.items()
                if data["quizId"] == quiz_id
            ]
        results = [Result.from_dict(data, result_id=rid) for rid, data in matches]
        results.sort(key=lambda r: r.completed_at, reverse=True)
        return results

    def get_progress(self, user_id):
        with self._lock_for(f"user:{user_id}"):
            return Progress.from_dict(copy.deepcopy(self._progress.get(user_id)), self.default_daily_goal)

    def get_analytics(self, quiz_id):
        with self._lock_for(f"quiz:{quiz_id}"):
            return AnalyticsAggregate.from_dict(quiz_id, copy.deepcopy(self._analytics.get(quiz_id)))

    def update_progress(self, user_id, mutate, result_id=None):
        with self._lock_for(f"user:{user_id}"):
            if result_id and self._claim_flag(result_id, PROGRESS_FLAG) is False:
                return False, None
            progress = Progress.from_dict(copy.deepcopy(self._progress.get(user_id)), self.default_daily_goal)
            try:
                payload = mutate(progress)
            except Exception:
                self._release_flag(result_id, PROGRESS_FLAG)
                raise
            self._progress[user_id] = progress.to_dict()
            return True, payload

    def update_analytics(self, quiz_id, fold, result_id=None):
        with self._lock_for(f"quiz:{quiz_id}"):
            if result_id and self._claim_flag(result_id, ANALYTICS_FLAG) is False:
                return False, None
            current = AnalyticsAggregate.from_dict(quiz_id, copy.deepcopy(self._analytics.get(quiz_id)))
            try:
                updated = fold(current)
            except Exception:
                self._release_flag(result_id, ANALYTICS_FLAG)
                raise
            self._analytics[quiz_id] = updated.to_dict()
            return True, updated

    def _claim_flag(self, result_id: str, flag: str) -> Optional[bool]:
        """Set the flag; False if it was already set, None if the result is unknown."""
        with self._guard:
            data = self._results.get(result_id)
            if data is None:
                return None
            if data.get(flag):
                return False
            data[flag] = True
            return True

    def _release_flag(self, result_id: Optional[str], flag: str) -> None:
        if not result_id:
            return
        with self._guard:
            data = self._results.get(result_id)
            if data is not None:
                data[flag] = False

# ============================================================================
# Store selection
# ============================================================================

_store: Optional[ScoringStore] = None


def get_store() -> ScoringStore:
    """Return the configured store, building it on first use."""
    global _store
    if _store is not None:
        return _store
    backend = (Config.SCORING_STORE or "firestore").lower()
    if backend == "memory":
        logger.info("Using in-memory scoring store")
        _store = MemoryScoringStore(default_daily_goal=Config.DEFAULT_DAILY_GOAL)
    else:
        _store = FirestoreScoringStore(
            max_attempts=Config.MAX_TXN_ATTEMPTS,
            default_daily_goal=Config.DEFAULT_DAILY_GOAL,
        )
    return _store


def set_store(store: Optional[ScoringStore]) -> None:
    global _store
    _store = store
