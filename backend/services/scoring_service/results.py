"""
Quiz result assembly and the submission workflow.

Submission flow:
1. Validate the payload (nothing is written if this fails)
2. Load the quiz (missing quiz is fatal) and the user's latest result for it
3. Grade every answered question, compute score, improvement and streak
4. Store the Result
5. Apply secondary effects: user progress, then quiz analytics

A failure in step 5 never removes the stored Result; it is reported as a
warning and can be retried through `reconcile_result`.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from . import analytics, progression
from .errors import DownstreamUpdateError, NotFoundError, PermissionDeniedError, ValidationError
from .evaluator import evaluate
from .models import AnalyticsAggregate, Quiz, Result, SubmittedAnswer
from .store import ScoringStore
from .streaks import update_streak
from .utils import is_finite_number, round_half_up, utc_now

logger = logging.getLogger(__name__)

# ============================================================================
# Submission parsing
# ============================================================================

@dataclass(frozen=True)
class AttemptSubmission:
    quiz_id: str
    user_id: str
    answers: List[SubmittedAnswer]
    time_spent: Optional[float] = None


def parse_submission(quiz_id: Any, user_id: Any, payload: Dict[str, Any]) -> AttemptSubmission:
    """Reject malformed submissions before any grading happens."""
    if not isinstance(quiz_id, str) or not quiz_id.strip():
        raise ValidationError("quizId is required")
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("userId is required")

    body_quiz_id = payload.get("quizId")
    if body_quiz_id is not None and body_quiz_id != quiz_id:
        raise ValidationError("quizId in body does not match the URL")

    raw_answers = payload.get("answers")
    if not isinstance(raw_answers, list):
        raise ValidationError("answers must be an array")

    answers = []
    for i, raw in enumerate(raw_answers):
        if not isinstance(raw, dict):
            raise ValidationError(f"answers[{i}] must be an object")
        qid = raw.get("questionId")
        if not isinstance(qid, str) or not qid.strip():
            raise ValidationError(f"answers[{i}].questionId must be a non-empty string")
        answers.append(SubmittedAnswer.from_dict(raw))

    time_spent = payload.get("timeSpent")
    if time_spent is not None:
        if not is_finite_number(time_spent) or time_spent < 0:
            raise ValidationError("timeSpent must be a non-negative number")
        time_spent = float(time_spent)

    return AttemptSubmission(quiz_id=quiz_id, user_id=user_id, answers=answers, time_spent=time_spent)

# ============================================================================
# Assembly (pure)
# ============================================================================

def compute_improvement(score: int, total: int, previous: Optional[Result]) -> Optional[str]:
    """Signed percentage-point change versus the previous attempt ("+15%", "-5%", "0%")."""
    if previous is None or previous.total_questions <= 0 or total <= 0:
        return None
    delta = round_half_up((score / total - previous.score / previous.total_questions) * 100)
    if delta > 0:
        return f"+{delta}%"
    return f"{delta}%"


def assemble(
    quiz: Quiz,
    submission: AttemptSubmission,
    previous_result: Optional[Result] = None,
    now: Optional[datetime] = None,
) -> Result:
    """
    Grade a submission into a Result ready to store.
    Unanswered questions produce no answer entry and score nothing; answers
    for questions outside the quiz are ignored, as are repeat answers.
    """
    now = now or utc_now()
    graded = []
    seen = set()
    for submitted in submission.answers:
        question = quiz.question(submitted.question_id)
        if question is None or submitted.question_id in seen:
            continue
        seen.add(submitted.question_id)
        graded.append(evaluate(question, submitted))

    score = sum(1 for a in graded if a.is_correct)
    total = len(quiz.questions)

    if previous_result is not None:
        streak = update_streak(
            previous_result.completed_at, now, previous_result.streak, previous_result.streak
        ).current
    else:
        streak = 1

    time_spent = submission.time_spent
    if time_spent is None:
        time_spent = sum(a.time_spent for a in graded)

    return Result(
        quiz_id=quiz.id,
        user_id=submission.user_id,
        score=score,
        total_questions=total,
        answers=graded,
        time_spent=time_spent,
        completed_at=now,
        improvement=compute_improvement(score, total, previous_result),
        streak=max(1, streak),
    )

# ============================================================================
# Workflow
# ============================================================================

@dataclass
class SubmissionOutcome:
    result: Result
    progress: Optional[progression.ActivityReport] = None
    analytics: Optional[AnalyticsAggregate] = None
    warnings: List[DownstreamUpdateError] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.warnings)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ok": True,
            "result": self.result.to_json(),
            "progress": self.progress.to_payload() if self.progress else None,
            "analyticsUpdated": self.analytics is not None,
            "partial": self.partial,
        }
        if self.warnings:
            payload["warnings"] = [
                {"effect": w.effect, "error": w.message, "retryable": w.retryable}
                for w in self.warnings
            ]
        return payload


def quiz_activity(result: Result) -> progression.ActivityOutcome:
    return progression.ActivityOutcome(
        "quiz", correct_answers=result.score, total_questions=result.total_questions
    )


def _apply_secondary_effects(store: ScoringStore, quiz: Quiz, result: Result, outcome: SubmissionOutcome) -> None:
    if not result.progress_applied:
        try:
            outcome.progress = progression.record_activity(
                store, result.user_id, quiz_activity(result),
                when=result.completed_at, result_id=result.id,
            )
        except Exception as e:
            logger.exception("Progress update failed for result %s", result.id)
            outcome.warnings.append(DownstreamUpdateError("progress", e))

    if not result.analytics_applied:
        try:
            outcome.analytics = analytics.record_attempt(store, quiz, result)
        except Exception as e:
            logger.exception("Analytics update failed for result %s", result.id)
            outcome.warnings.append(DownstreamUpdateError("analytics", e))


def submit_attempt(
    store: ScoringStore,
    quiz_id: str,
    uid: str,
    payload: Dict[str, Any],
    now: Optional[datetime] = None,
) -> SubmissionOutcome:
    """Grade and store an attempt, then update progress and analytics."""
    submission = parse_submission(quiz_id, uid, payload)

    quiz = store.get_quiz(quiz_id)
    if quiz is None:
        raise NotFoundError("Quiz not found")
    if not quiz.questions:
        raise ValidationError("Quiz has no questions")

    previous = store.latest_result(quiz_id, uid)
    result = assemble(quiz, submission, previous, now)
    result = store.add_result(result)
    logger.info(
        "Stored result %s for user %s on quiz %s: %d/%d",
        result.id, uid, quiz_id, result.score, result.total_questions,
    )

    outcome = SubmissionOutcome(result=result)
    _apply_secondary_effects(store, quiz, result, outcome)
    return outcome


def reconcile_result(store: ScoringStore, result_id: str, uid: str) -> SubmissionOutcome:
    """Re-apply any secondary effect of a stored result that has not landed yet."""
    result = get_result(store, result_id, uid)
    quiz = store.get_quiz(result.quiz_id)
    if quiz is None:
        raise NotFoundError("Quiz not found")

    outcome = SubmissionOutcome(result=result)
    _apply_secondary_effects(store, quiz, result, outcome)
    return outcome


def get_result(store: ScoringStore, result_id: str, uid: str) -> Result:
    result = store.get_result(result_id)
    if result is None:
        raise NotFoundError("Result not found")
    if result.user_id != uid:
        raise PermissionDeniedError("Result belongs to another user")
    return result


def list_results(store: ScoringStore, uid: str, quiz_id: Optional[str] = None) -> Dict[str, Any]:
    """
    User's results (most recent first) with summary stats.

    Returns:
    {
        "ok": true,
        "results": [...],
        "stats": {
            "totalQuizzesTaken": 4,
            "averageScore": 72.5,     # mean percentage score
            "totalTimeSpent": 1800,
            "currentStreak": 3        # streak on the most recent result
        }
    }
    """
    results = store.list_results(uid, quiz_id)
    if not results:
        stats = {"totalQuizzesTaken": 0, "averageScore": 0, "totalTimeSpent": 0, "currentStreak": 0}
    else:
        stats = {
            "totalQuizzesTaken": len(results),
            "averageScore": round(sum(r.percentage_score for r in results) / len(results), 2),
            "totalTimeSpent": sum(r.time_spent for r in results),
            "currentStreak": results[0].streak,
        }
    return {"ok": True, "results": [r.to_json() for r in results], "stats": stats}
