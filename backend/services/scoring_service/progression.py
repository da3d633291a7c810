"""
User progression: XP, levels, streaks, study counters and achievements.

XP Rules:
- Flashcard review: +10 XP if correct, +2 XP otherwise
- Quiz without a detailed score: flat +15 XP
- Quiz with a score: round(percentage / 10) * 5 XP (0-50)
- Achievement bonuses (daily goal, perfect score) on first unlock
- Direct awards (e.g. from other features) through `award_xp`

Level = 1 + floor(xp / 100), always recomputed from total XP.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from . import achievements as ach
from .errors import ValidationError
from .models import Achievement, Progress
from .store import ScoringStore
from .streaks import StreakUpdate, update_streak
from .utils import is_finite_number, round_half_up, to_day, utc_now

logger = logging.getLogger(__name__)

# ============================================================================
# Configuration
# ============================================================================

XP_PER_LEVEL = 100
XP_FLASHCARD_CORRECT = 10
XP_FLASHCARD_REVIEW = 2
XP_QUIZ_FLAT = 15
XP_QUIZ_STEP = 5

ACTIVITY_TYPES = ("flashcard", "quiz")

# ============================================================================
# Level Calculation
# ============================================================================

def calculate_level(xp: int) -> int:
    if xp <= 0:
        return 1
    return 1 + xp // XP_PER_LEVEL


def xp_for_level(level: int) -> int:
    """Calculate total XP needed to reach a specific level"""
    if level <= 1:
        return 0
    return (level - 1) * XP_PER_LEVEL

# ============================================================================
# Activities
# ============================================================================

@dataclass(frozen=True)
class ActivityOutcome:
    activity_type: str
    is_correct: Optional[bool] = None
    correct_answers: Optional[int] = None
    total_questions: Optional[int] = None

    @property
    def has_score(self) -> bool:
        return self.correct_answers is not None and bool(self.total_questions)

    @property
    def is_perfect(self) -> bool:
        return self.has_score and self.correct_answers == self.total_questions

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ActivityOutcome":
        """Validate an activity event body ({activityType, isCorrect?, correctAnswers?, totalQuestions?})."""
        activity_type = data.get("activityType")
        if activity_type not in ACTIVITY_TYPES:
            raise ValidationError("Invalid activity type")

        if activity_type == "flashcard":
            is_correct = data.get("isCorrect")
            if not isinstance(is_correct, bool):
                raise ValidationError("isCorrect parameter is required for flashcard activity")
            return cls("flashcard", is_correct=is_correct)

        correct = data.get("correctAnswers")
        total = data.get("totalQuestions")
        if correct is None and total is None:
            return cls("quiz")
        if not (_is_count(correct) and _is_count(total)):
            raise ValidationError("correctAnswers and totalQuestions must both be non-negative integers")
        if total < 1 or correct > total:
            raise ValidationError("correctAnswers must be between 0 and totalQuestions")
        return cls("quiz", correct_answers=correct, total_questions=total)


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def xp_for_activity(outcome: ActivityOutcome) -> int:
    """XP earned by one activity, before achievement bonuses."""
    if outcome.activity_type == "flashcard":
        return XP_FLASHCARD_CORRECT if outcome.is_correct else XP_FLASHCARD_REVIEW
    if not outcome.has_score:
        return XP_QUIZ_FLAT
    percentage = outcome.correct_answers / outcome.total_questions * 100
    return round_half_up(percentage / 10) * XP_QUIZ_STEP


@dataclass
class ActivityReport:
    xp_earned: int
    total_xp: int
    new_level: int
    level_up: bool
    daily_goal_met: bool
    streak: StreakUpdate
    new_achievements: List[Achievement] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "xpEarned": self.xp_earned,
            "totalXp": self.total_xp,
            "newLevel": self.new_level,
            "levelUp": self.level_up,
            "dailyGoalMet": self.daily_goal_met,
        }
        if self.streak.changed:
            payload["streakUpdated"] = {
                "currentStreak": self.streak.current,
                "longestStreak": self.streak.longest,
            }
        if self.new_achievements:
            payload["newAchievements"] = [a.to_json() for a in self.new_achievements]
        return payload


def _advance_streak(progress: Progress, when: datetime) -> StreakUpdate:
    today = to_day(when)
    streak = update_streak(progress.last_active_date, today, progress.current_streak, progress.longest_streak)
    progress.current_streak = streak.current
    progress.longest_streak = streak.longest
    progress.last_active_date = today
    return streak


def _unlock(progress: Progress, family: ach.MilestoneFamily, counter: float, when: datetime) -> List[Achievement]:
    return progress.unlock(family.check(counter, progress.unlocked_ids(), when))


def _unlock_xp_milestones(progress: Progress, when: datetime) -> List[Achievement]:
    earned = _unlock(progress, ach.XP_MILESTONES, progress.xp, when)
    earned += _unlock(progress, ach.LEVEL_MILESTONES, progress.level, when)
    return earned


def apply_activity(progress: Progress, outcome: ActivityOutcome, when: datetime) -> ActivityReport:
    """
    Apply one activity to a progress record in place.
    Pure apart from mutating `progress`; the store runs it inside a
    transaction so it may be called more than once on retry.
    """
    old_level = progress.level
    streak = _advance_streak(progress, when)
    earned: List[Achievement] = []

    if outcome.activity_type == "flashcard":
        progress.total_cards_studied += 1
        if outcome.is_correct:
            progress.total_correct_answers += 1
        else:
            progress.total_incorrect_answers += 1
        progress.daily_progress += 1

        earned += _unlock(progress, ach.CARD_MILESTONES, progress.total_cards_studied, when)
        if progress.total_cards_studied >= ach.ACCURACY_MIN_CARDS:
            earned += _unlock(progress, ach.ACCURACY_MILESTONES, progress.average_accuracy, when)
        earned += _unlock(progress, ach.DAILY_GOAL_MILESTONES, int(progress.daily_goal_met), when)
    else:
        progress.total_quizzes_taken += 1
        if outcome.has_score:
            progress.total_correct_answers += outcome.correct_answers
            progress.total_incorrect_answers += outcome.total_questions - outcome.correct_answers

        earned += _unlock(progress, ach.QUIZ_MILESTONES, progress.total_quizzes_taken, when)
        perfect = outcome.is_perfect and outcome.total_questions >= ach.PERFECT_SCORE_MIN_QUESTIONS
        earned += _unlock(progress, ach.PERFECT_SCORE_MILESTONES, int(perfect), when)

    # Keyed on the streak after this activity, not the historical best
    earned += _unlock(progress, ach.STREAK_MILESTONES, progress.current_streak, when)

    bonus = sum(family.bonus_xp(earned) for family in ach.ALL_FAMILIES)
    xp_earned = xp_for_activity(outcome) + bonus
    progress.xp += xp_earned
    earned += _unlock_xp_milestones(progress, when)

    return ActivityReport(
        xp_earned=xp_earned,
        total_xp=progress.xp,
        new_level=progress.level,
        level_up=progress.level > old_level,
        daily_goal_met=progress.daily_goal_met,
        streak=streak,
        new_achievements=earned,
    )

# ============================================================================
# Public API
# ============================================================================

def record_activity(
    store: ScoringStore,
    uid: str,
    outcome: ActivityOutcome,
    when: Optional[datetime] = None,
    result_id: Optional[str] = None,
) -> Optional[ActivityReport]:
    """
    Apply an activity to the user's progress (serialized per user).

    With `result_id`, the update is applied at most once for that result;
    returns None when it had already been applied.
    """
    when = when or utc_now()
    applied, report = store.update_progress(
        uid, lambda progress: apply_activity(progress, outcome, when), result_id=result_id
    )
    if not applied:
        logger.info("Progress for result %s already applied; skipping", result_id)
        return None
    if report.new_achievements:
        logger.info("User %s unlocked %s", uid, [a.id for a in report.new_achievements])
    return report


def check_in(store: ScoringStore, uid: str, when: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Daily check-in: advances the streak without any other activity.
    Returns {currentStreak, longestStreak, streakMilestone, newAchievements?}.
    """
    when = when or utc_now()

    def mutate(progress: Progress) -> Dict[str, Any]:
        streak = _advance_streak(progress, when)
        earned = _unlock(progress, ach.STREAK_MILESTONES, progress.current_streak, when)
        payload: Dict[str, Any] = {
            "currentStreak": streak.current,
            "longestStreak": streak.longest,
            "streakMilestone": bool(earned),
        }
        if earned:
            payload["newAchievements"] = [a.to_json() for a in earned]
        return payload

    _, payload = store.update_progress(uid, mutate)
    return payload


def add_study_time(store: ScoringStore, uid: str, minutes: Any) -> Dict[str, Any]:
    """Add study minutes to the user's running total."""
    if not is_finite_number(minutes) or minutes <= 0:
        raise ValidationError("Invalid study time")

    def mutate(progress: Progress) -> Dict[str, Any]:
        progress.study_time += round_half_up(minutes)
        return {"studyTime": progress.study_time}

    _, payload = store.update_progress(uid, mutate)
    return payload


def award_xp(
    store: ScoringStore,
    uid: str,
    amount: Any,
    reason: Optional[str] = None,
    when: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Grant XP outside the activity rules and unlock any XP/level milestones.
    Returns {newXp, newLevel, levelUp, newAchievements?}.
    """
    if not is_finite_number(amount) or amount <= 0:
        raise ValidationError("Invalid XP amount")
    xp = round_half_up(amount)
    if xp <= 0:
        raise ValidationError("Invalid XP amount")
    when = when or utc_now()

    def mutate(progress: Progress) -> Dict[str, Any]:
        old_level = progress.level
        progress.xp += xp
        earned = _unlock_xp_milestones(progress, when)
        payload: Dict[str, Any] = {
            "newXp": progress.xp,
            "newLevel": progress.level,
            "levelUp": progress.level > old_level,
        }
        if earned:
            payload["newAchievements"] = [a.to_json() for a in earned]
        return payload

    _, payload = store.update_progress(uid, mutate)
    logger.info("Awarded %d XP to %s (%s)", xp, uid, reason or "unspecified")
    return payload


def get_profile(store: ScoringStore, uid: str) -> Dict[str, Any]:
    """
    Get user's gamification profile plus distance to the next level.

    Returns:
    {
        "ok": true,
        "gamification": {"xp": 340, "level": 4, "currentStreak": 2, ...},
        "nextLevel": {"level": 5, "xpNeeded": 60}
    }
    """
    progress = store.get_progress(uid)
    next_level = progress.level + 1
    return {
        "ok": True,
        "gamification": progress.to_json(),
        "nextLevel": {
            "level": next_level,
            "xpNeeded": xp_for_level(next_level) - progress.xp,
        },
    }
