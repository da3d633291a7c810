"""
Milestone achievements.

Every achievement family is a counter plus an ordered threshold table.
Families never share ids, so an achievement id identifies exactly one
milestone. Unlocking is idempotent: a milestone already present in the
user's achievement set is never emitted again.

Families:
- streak    keyed on the current day streak
- cards     keyed on total flashcards studied
- quiz      keyed on total quizzes completed
- accuracy  keyed on average accuracy, once 100+ cards were studied
- daily     one-off: daily study goal reached (+20 XP bonus)
- perfect   one-off: every answer right on a quiz of 5+ questions (+25 XP bonus)
- xp        keyed on total XP, checked after the activity's XP (bonuses included)
- level     keyed on the level derived from that XP
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import Achievement
from .utils import utc_now

# ============================================================================
# Configuration
# ============================================================================

ACCURACY_MIN_CARDS = 100
PERFECT_SCORE_MIN_QUESTIONS = 5


@dataclass(frozen=True)
class Milestone:
    threshold: int
    id: str
    name: str
    description: str
    icon: str
    bonus_xp: int = 0


@dataclass(frozen=True)
class MilestoneFamily:
    category: str
    milestones: Tuple[Milestone, ...]

    def check(
        self,
        counter_value: float,
        unlocked_ids: Iterable[str],
        now: Optional[datetime] = None,
    ) -> List[Achievement]:
        return check_milestones(counter_value, self.milestones, unlocked_ids, now, category=self.category)

    def bonus_xp(self, achievements: Iterable[Achievement]) -> int:
        bonuses = {m.id: m.bonus_xp for m in self.milestones}
        return sum(bonuses.get(a.id, 0) for a in achievements)


STREAK_MILESTONES = MilestoneFamily("streak", (
    Milestone(3, "streak-3", "On Fire", "Study 3 days in a row", "🔥"),
    Milestone(7, "streak-7", "Week Warrior", "Study 7 days in a row", "📅"),
    Milestone(30, "streak-30", "Monthly Dedication", "Study 30 days in a row", "📊"),
    Milestone(100, "streak-100", "Century Club", "Study 100 days in a row", "🌟"),
    Milestone(365, "streak-365", "Year of Knowledge", "Study 365 days in a row", "🏆"),
))

CARD_MILESTONES = MilestoneFamily("cards", (
    Milestone(10, "cards-10", "Getting Started", "Study 10 flashcards", "🔄"),
    Milestone(100, "cards-100", "Learning Basics", "Study 100 flashcards", "📝"),
    Milestone(500, "cards-500", "Memory Master", "Study 500 flashcards", "🧠"),
    Milestone(1000, "cards-1000", "Study Champion", "Study 1,000 flashcards", "🏅"),
    Milestone(5000, "cards-5000", "Flashcard Legend", "Study 5,000 flashcards", "👑"),
))

QUIZ_MILESTONES = MilestoneFamily("quiz", (
    Milestone(1, "quiz-1", "Quiz Taker", "Complete your first quiz", "📝"),
    Milestone(10, "quiz-10", "Quiz Regular", "Complete 10 quizzes", "📊"),
    Milestone(50, "quiz-50", "Quiz Expert", "Complete 50 quizzes", "🧩"),
    Milestone(100, "quiz-100", "Quiz Master", "Complete 100 quizzes", "🏆"),
))

ACCURACY_MILESTONES = MilestoneFamily("accuracy", (
    Milestone(70, "accuracy-70", "Above Average", "Maintain 70% accuracy after 100+ cards", "📈"),
    Milestone(80, "accuracy-80", "High Performer", "Maintain 80% accuracy after 100+ cards", "📊"),
    Milestone(90, "accuracy-90", "Excellence", "Maintain 90% accuracy after 100+ cards", "🎯"),
    Milestone(95, "accuracy-95", "Near Perfect", "Maintain 95% accuracy after 100+ cards", "⭐"),
    Milestone(100, "accuracy-100", "Perfect Recall", "Maintain 100% accuracy after 100+ cards", "🌟"),
))

DAILY_GOAL_MILESTONES = MilestoneFamily("daily", (
    Milestone(1, "daily-goal", "Goal Crusher", "Complete your daily study goal", "🎯", bonus_xp=20),
))

PERFECT_SCORE_MILESTONES = MilestoneFamily("perfect", (
    Milestone(1, "quiz-perfect", "Perfect Score", "Get all questions correct in a quiz", "🎯", bonus_xp=25),
))

XP_MILESTONES = MilestoneFamily("xp", (
    Milestone(100, "xp-100", "Beginner Learner", "Earn 100 XP", "🌱"),
    Milestone(500, "xp-500", "Dedicated Student", "Earn 500 XP", "📚"),
    Milestone(1000, "xp-1000", "Knowledge Seeker", "Earn 1,000 XP", "🔍"),
    Milestone(5000, "xp-5000", "Medical Scholar", "Earn 5,000 XP", "🧠"),
    Milestone(10000, "xp-10000", "Future Doctor", "Earn 10,000 XP", "⚕️"),
))

LEVEL_MILESTONES = MilestoneFamily("level", (
    Milestone(5, "level-5", "Rising Star", "Reach level 5", "⭐"),
    Milestone(10, "level-10", "Dedicated Learner", "Reach level 10", "🌟"),
    Milestone(25, "level-25", "Medical Expert", "Reach level 25", "🏆"),
    Milestone(50, "level-50", "Medical Virtuoso", "Reach level 50", "👨‍⚕️"),
    Milestone(100, "level-100", "Medical Legend", "Reach level 100", "🌠"),
))

ALL_FAMILIES: Tuple[MilestoneFamily, ...] = (
    STREAK_MILESTONES,
    CARD_MILESTONES,
    QUIZ_MILESTONES,
    ACCURACY_MILESTONES,
    DAILY_GOAL_MILESTONES,
    PERFECT_SCORE_MILESTONES,
    XP_MILESTONES,
    LEVEL_MILESTONES,
)


def _assert_unique_ids(families: Iterable[MilestoneFamily]) -> None:
    seen: Dict[str, str] = {}
    for family in families:
        for m in family.milestones:
            if m.id in seen:
                raise ValueError(f"Milestone id {m.id!r} used by {seen[m.id]} and {family.category}")
            seen[m.id] = family.category


_assert_unique_ids(ALL_FAMILIES)

# ============================================================================
# Public API
# ============================================================================

def check_milestones(
    counter_value: float,
    milestone_table: Iterable[Milestone],
    already_unlocked_ids: Iterable[str],
    now: Optional[datetime] = None,
    category: str = "",
) -> List[Achievement]:
    """
    Return a new Achievement for every milestone whose threshold the counter
    has reached and whose id is not already unlocked.
    """
    unlocked = set(already_unlocked_ids)
    unlocked_at = now or utc_now()
    earned: List[Achievement] = []

    for m in milestone_table:
        if counter_value < m.threshold or m.id in unlocked:
            continue
        unlocked.add(m.id)
        earned.append(Achievement(
            id=m.id,
            name=m.name,
            description=m.description,
            category=category,
            icon=m.icon,
            unlocked_at=unlocked_at,
        ))
    return earned


def achievement_catalog() -> List[Dict[str, Any]]:
    """
    All achievements grouped by family, for display purposes.
    Useful for showing locked/unlocked badges in the UI.
    """
    return [
        {
            "category": family.category,
            "milestones": [
                {
                    "id": m.id,
                    "name": m.name,
                    "description": m.description,
                    "icon": m.icon,
                    "threshold": m.threshold,
                    "bonusXp": m.bonus_xp,
                }
                for m in family.milestones
            ],
        }
        for family in ALL_FAMILIES
    ]
