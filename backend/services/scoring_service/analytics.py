"""
Per-quiz analytics, maintained incrementally.

Each attempt is folded into running means; the raw attempt history is never
replayed. For a mean over n samples with a new sample x:

    avg' = (avg * (n - 1) + x) / n

Tracked per quiz: completion rate, score percentage and time spent.
Tracked per question (created on first appearance): success rate and skip
rate over that question's attempts, time spent over its answered samples.
"""

from __future__ import annotations
import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import NotFoundError, PermissionDeniedError
from .models import AnalyticsAggregate, EvaluatedAnswer, QuestionStat, Quiz, Result
from .store import ScoringStore
from .utils import round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptSample:
    """What a single attempt contributes to the aggregate."""
    completed: bool
    score_percentage: float
    time_spent: float
    question_ids: Tuple[str, ...]
    answers: Dict[str, EvaluatedAnswer]

    @classmethod
    def from_result(cls, quiz: Quiz, result: Result) -> "AttemptSample":
        answers = {a.question_id: a for a in result.answers}
        question_ids = list(quiz.question_ids)
        for qid in answers:
            if qid not in question_ids:
                question_ids.append(qid)
        return cls(
            completed=result.completed_at is not None,
            score_percentage=result.percentage_score,
            time_spent=result.time_spent,
            question_ids=tuple(question_ids),
            answers=answers,
        )


def running_mean(average: float, count: int, sample: float) -> float:
    """Mean after adding `sample` as the `count`-th value."""
    if count <= 1:
        return float(sample)
    return (average * (count - 1) + sample) / count


def _rate(value: float) -> float:
    return min(100.0, max(0.0, value))


def fold(aggregate: AnalyticsAggregate, attempt: AttemptSample) -> AnalyticsAggregate:
    """Return a new aggregate with `attempt` folded in; the input is not modified."""
    updated = copy.deepcopy(aggregate)
    updated.total_attempts += 1
    n = updated.total_attempts

    updated.completion_rate = _rate(running_mean(updated.completion_rate, n, 100.0 if attempt.completed else 0.0))
    updated.average_score = running_mean(updated.average_score, n, attempt.score_percentage)
    updated.average_time_spent = running_mean(updated.average_time_spent, n, attempt.time_spent)

    for qid in attempt.question_ids:
        stat = updated.question_stats.get(qid)
        if stat is None:
            stat = updated.question_stats[qid] = QuestionStat(question_id=qid)

        answer = attempt.answers.get(qid)
        skipped = answer is None or answer.skipped
        correct = answer is not None and answer.is_correct

        stat.attempts += 1
        stat.success_rate = _rate(running_mean(stat.success_rate, stat.attempts, 100.0 if correct else 0.0))
        stat.skip_rate = _rate(running_mean(stat.skip_rate, stat.attempts, 100.0 if skipped else 0.0))
        if not skipped:
            stat.answered += 1
            stat.average_time_spent = running_mean(stat.average_time_spent, stat.answered, answer.time_spent)

    return updated

# ============================================================================
# Caller's standing
# ============================================================================

# (minimum percentile, rank), highest first
RANK_BANDS = (
    (95, "Expert"),
    (80, "Advanced"),
    (60, "Intermediate"),
    (40, "Novice"),
    (0, "Beginner"),
)


def rank_for_percentile(percentile: int) -> str:
    for minimum, rank in RANK_BANDS:
        if percentile >= minimum:
            return rank
    return RANK_BANDS[-1][1]


def user_performance(quiz_results: List[Result], uid: str) -> Optional[Dict[str, Any]]:
    """
    Where the caller's latest attempt stands among every attempt on the quiz.
    Read from stored results; the aggregate is not involved.
    """
    mine = [r for r in quiz_results if r.user_id == uid]
    if not mine:
        return None
    latest = max(mine, key=lambda r: r.completed_at)
    scores = [r.percentage_score for r in quiz_results]
    lower = sum(1 for s in scores if s < latest.percentage_score)
    percentile = round_half_up(lower / len(scores) * 100)
    return {
        "percentile": percentile,
        "rank": rank_for_percentile(percentile),
        "fastestTime": latest.time_spent == min(r.time_spent for r in quiz_results),
        "highestAccuracy": latest.percentage_score == max(scores),
    }


def accuracy_trend(quiz_results: List[Result], uid: str) -> List[Dict[str, Any]]:
    """The caller's scores on the quiz, oldest first."""
    mine = sorted((r for r in quiz_results if r.user_id == uid), key=lambda r: r.completed_at)
    return [{"date": r.completed_at.isoformat(), "score": r.percentage_score} for r in mine]

# ============================================================================
# Public API
# ============================================================================

def record_attempt(store: ScoringStore, quiz: Quiz, result: Result) -> Optional[AnalyticsAggregate]:
    """
    Fold a stored result into its quiz's analytics (serialized per quiz).
    Applied at most once per result id; returns None when already folded.
    """
    sample = AttemptSample.from_result(quiz, result)
    applied, aggregate = store.update_analytics(
        quiz.id, lambda current: fold(current, sample), result_id=result.id
    )
    if not applied:
        logger.info("Analytics for result %s already folded; skipping", result.id)
        return None
    return aggregate


def get_analytics(store: ScoringStore, quiz_id: str, uid: str) -> Dict[str, Any]:
    """
    Analytics for one quiz, visible to the quiz author only.

    Returns:
    {
        "ok": true,
        "analytics": {
            "quizId": "...",
            "totalAttempts": 5,
            "completionRate": 100.0,
            "averageScore": 66.0,
            "averageTimeSpent": 312.4,
            "questionStats": {"q1": {"successRate": 80.0, "skipRate": 0.0, ...}}
        },
        "userPerformance": {"percentile": 60, "rank": "Intermediate", "fastestTime": false, ...},
        "accuracyTrend": [{"date": "2026-03-10T12:00:00+00:00", "score": 75.0}]
    }
    userPerformance is null when the caller has no attempt on the quiz.
    """
    quiz = store.get_quiz(quiz_id)
    if quiz is None:
        raise NotFoundError("Quiz not found")
    if quiz.created_by and quiz.created_by != uid:
        raise PermissionDeniedError("Only the quiz author can view its analytics")

    quiz_results = store.list_quiz_results(quiz_id)
    return {
        "ok": True,
        "analytics": store.get_analytics(quiz_id).to_dict(),
        "userPerformance": user_performance(quiz_results, uid),
        "accuracyTrend": accuracy_trend(quiz_results, uid),
    }
