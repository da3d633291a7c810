"""
Data model for quiz scoring and gamification.

Documents are stored with camelCase field names (the same shape the web
client sends and reads); these classes convert to and from that shape.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
import math
from typing import Any, Dict, List, Optional, Tuple

from .utils import parse_timestamp, round_half_up, to_day, to_yyyy_mm_dd

# ============================================================================
# Quiz definition (read-only at grading time)
# ============================================================================

class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"
    IMAGE_IDENTIFICATION = "image-identification"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> "QuestionType":
        key = str(raw or "").strip().lower().replace("_", "-")
        key = _TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_choice(self) -> bool:
        return self in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE)

    @property
    def is_free_text(self) -> bool:
        return self in (QuestionType.SHORT_ANSWER, QuestionType.IMAGE_IDENTIFICATION)


# Older quiz documents use the short names
_TYPE_ALIASES = {
    "saq": "short-answer",
    "spot": "image-identification",
}


@dataclass(frozen=True)
class Question:
    id: str
    type: QuestionType
    options: Tuple[str, ...] = ()
    correct_answer: Any = None

    @property
    def accepted_answers(self) -> Tuple[str, ...]:
        """Canonical answer first, then aliases."""
        raw = self.correct_answer
        if raw is None:
            return ()
        if isinstance(raw, (list, tuple)):
            return tuple(str(a) for a in raw if a is not None)
        return (str(raw),)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        qid = data.get("id") or data.get("_id") or ""
        options = data.get("options") or []
        correct = data.get("correctAnswer")
        if isinstance(correct, list):
            correct = tuple(correct)
        return cls(
            id=str(qid),
            type=QuestionType.parse(data.get("type")),
            options=tuple(str(o) for o in options) if isinstance(options, list) else (),
            correct_answer=correct,
        )


@dataclass(frozen=True)
class Quiz:
    id: str
    questions: Tuple[Question, ...]
    title: str = ""
    created_by: Optional[str] = None

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    def question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    @classmethod
    def from_dict(cls, quiz_id: str, data: Dict[str, Any]) -> "Quiz":
        raw_questions = data.get("questions") or []
        return cls(
            id=str(quiz_id),
            questions=tuple(Question.from_dict(q) for q in raw_questions if isinstance(q, dict)),
            title=data.get("title", ""),
            created_by=data.get("createdBy"),
        )

# ============================================================================
# Attempts and results
# ============================================================================

@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: str
    selected_option_ids: Optional[Tuple[str, ...]] = None
    short_answer: Optional[str] = None
    time_spent: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmittedAnswer":
        selected = data.get("selectedOptionIds")
        if selected is None:
            selected_ids = None
        elif isinstance(selected, (list, tuple, set)):
            selected_ids = tuple(str(s) for s in selected if s is not None)
        else:
            # Malformed selection grades as "no selection"
            selected_ids = ()

        short = data.get("shortAnswer")
        return cls(
            question_id=str(data.get("questionId") or ""),
            selected_option_ids=selected_ids,
            short_answer=short if isinstance(short, str) else None,
            time_spent=_non_negative(data.get("timeSpent")),
        )


@dataclass(frozen=True)
class EvaluatedAnswer:
    question_id: str
    user_answer: Any
    is_correct: bool
    time_spent: float = 0.0

    @property
    def skipped(self) -> bool:
        return self.user_answer is None or self.user_answer == ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "userAnswer": self.user_answer,
            "isCorrect": self.is_correct,
            "timeSpent": self.time_spent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvaluatedAnswer":
        return cls(
            question_id=str(data.get("questionId", "")),
            user_answer=data.get("userAnswer"),
            is_correct=bool(data.get("isCorrect", False)),
            time_spent=_non_negative(data.get("timeSpent")),
        )


@dataclass
class Result:
    quiz_id: str
    user_id: str
    score: int
    total_questions: int
    answers: List[EvaluatedAnswer]
    time_spent: float
    completed_at: datetime
    improvement: Optional[str] = None
    streak: int = 1
    id: Optional[str] = None
    progress_applied: bool = False
    analytics_applied: bool = False

    @property
    def percentage_score(self) -> float:
        if self.total_questions <= 0:
            return 0.0
        return round(self.score / self.total_questions * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        """Storage shape (timestamps stay datetimes)."""
        return {
            "quizId": self.quiz_id,
            "userId": self.user_id,
            "score": self.score,
            "totalQuestions": self.total_questions,
            "answers": [a.to_dict() for a in self.answers],
            "timeSpent": self.time_spent,
            "completedAt": self.completed_at,
            "improvement": self.improvement,
            "streak": self.streak,
            "percentageScore": self.percentage_score,
            "progressApplied": self.progress_applied,
            "analyticsApplied": self.analytics_applied,
        }

    def to_json(self) -> Dict[str, Any]:
        data = self.to_dict()
        data["id"] = self.id
        data["completedAt"] = self.completed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], result_id: Optional[str] = None) -> "Result":
        return cls(
            id=result_id or data.get("id"),
            quiz_id=str(data.get("quizId", "")),
            user_id=str(data.get("userId", "")),
            score=int(data.get("score", 0)),
            total_questions=int(data.get("totalQuestions", 0)),
            answers=[EvaluatedAnswer.from_dict(a) for a in data.get("answers") or []],
            time_spent=_non_negative(data.get("timeSpent")),
            completed_at=parse_timestamp(data.get("completedAt")),
            improvement=data.get("improvement"),
            streak=max(1, int(data.get("streak", 1) or 1)),
            progress_applied=bool(data.get("progressApplied", False)),
            analytics_applied=bool(data.get("analyticsApplied", False)),
        )

# ============================================================================
# Gamification
# ============================================================================

@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    category: str
    icon: str
    unlocked_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "icon": self.icon,
            "unlockedAt": self.unlocked_at,
        }

    def to_json(self) -> Dict[str, Any]:
        data = self.to_dict()
        data["unlockedAt"] = self.unlocked_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Achievement":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            description=data.get("description", ""),
            category=data.get("category", ""),
            icon=data.get("icon", ""),
            unlocked_at=parse_timestamp(data.get("unlockedAt")),
        )


@dataclass
class Progress:
    xp: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: Optional[date] = None
    daily_goal: int = 10
    daily_progress: int = 0
    total_cards_studied: int = 0
    total_quizzes_taken: int = 0
    total_correct_answers: int = 0
    total_incorrect_answers: int = 0
    study_time: int = 0
    achievements: Dict[str, Achievement] = field(default_factory=dict)

    @property
    def level(self) -> int:
        # progression imports this module
        from .progression import calculate_level
        return calculate_level(self.xp)

    @property
    def average_accuracy(self) -> int:
        answered = self.total_correct_answers + self.total_incorrect_answers
        if answered <= 0:
            return 0
        return round_half_up(self.total_correct_answers * 100 / answered)

    @property
    def daily_goal_met(self) -> bool:
        return self.daily_progress >= self.daily_goal

    def unlocked_ids(self) -> set:
        return set(self.achievements)

    def unlock(self, new_achievements: List[Achievement]) -> List[Achievement]:
        """Add achievements not yet present; returns the ones actually added."""
        added = []
        for ach in new_achievements:
            if ach.id in self.achievements:
                continue
            self.achievements[ach.id] = ach
            added.append(ach)
        return added

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xp": self.xp,
            "level": self.level,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastActiveDate": to_yyyy_mm_dd(self.last_active_date),
            "dailyGoal": self.daily_goal,
            "dailyProgress": self.daily_progress,
            "totalCardsStudied": self.total_cards_studied,
            "totalQuizzesTaken": self.total_quizzes_taken,
            "totalCorrectAnswers": self.total_correct_answers,
            "totalIncorrectAnswers": self.total_incorrect_answers,
            "averageAccuracy": self.average_accuracy,
            "studyTime": self.study_time,
            "achievements": [a.to_dict() for a in self.achievements.values()],
        }

    def to_json(self) -> Dict[str, Any]:
        data = self.to_dict()
        data["achievements"] = [a.to_json() for a in self.achievements.values()]
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], default_daily_goal: int = 10) -> "Progress":
        data = data or {}
        achievements: Dict[str, Achievement] = {}
        for raw in data.get("achievements") or []:
            ach = Achievement.from_dict(raw)
            # First unlock wins if storage ever holds a duplicate
            achievements.setdefault(ach.id, ach)

        current = int(data.get("currentStreak", 0) or 0)
        return cls(
            xp=max(0, int(data.get("xp", 0) or 0)),
            current_streak=current,
            longest_streak=max(current, int(data.get("longestStreak", 0) or 0)),
            last_active_date=to_day(data.get("lastActiveDate")),
            daily_goal=int(data.get("dailyGoal") or default_daily_goal),
            daily_progress=int(data.get("dailyProgress", 0) or 0),
            total_cards_studied=int(data.get("totalCardsStudied", 0) or 0),
            total_quizzes_taken=int(data.get("totalQuizzesTaken", 0) or 0),
            total_correct_answers=int(data.get("totalCorrectAnswers", 0) or 0),
            total_incorrect_answers=int(data.get("totalIncorrectAnswers", 0) or 0),
            study_time=int(data.get("studyTime", 0) or 0),
            achievements=achievements,
        )

# ============================================================================
# Analytics
# ============================================================================

@dataclass
class QuestionStat:
    question_id: str
    attempts: int = 0
    answered: int = 0
    success_rate: float = 0.0
    average_time_spent: float = 0.0
    skip_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "attempts": self.attempts,
            "answered": self.answered,
            "successRate": self.success_rate,
            "averageTimeSpent": self.average_time_spent,
            "skipRate": self.skip_rate,
        }

    @classmethod
    def from_dict(cls, question_id: str, data: Dict[str, Any]) -> "QuestionStat":
        return cls(
            question_id=question_id,
            attempts=int(data.get("attempts", 0)),
            answered=int(data.get("answered", 0)),
            success_rate=float(data.get("successRate", 0.0)),
            average_time_spent=float(data.get("averageTimeSpent", 0.0)),
            skip_rate=float(data.get("skipRate", 0.0)),
        )


@dataclass
class AnalyticsAggregate:
    quiz_id: str
    total_attempts: int = 0
    completion_rate: float = 0.0
    average_score: float = 0.0
    average_time_spent: float = 0.0
    question_stats: Dict[str, QuestionStat] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quizId": self.quiz_id,
            "totalAttempts": self.total_attempts,
            "completionRate": self.completion_rate,
            "averageScore": self.average_score,
            "averageTimeSpent": self.average_time_spent,
            "questionStats": {qid: s.to_dict() for qid, s in self.question_stats.items()},
        }

    @classmethod
    def from_dict(cls, quiz_id: str, data: Optional[Dict[str, Any]]) -> "AnalyticsAggregate":
        data = data or {}
        stats = data.get("questionStats") or {}
        return cls(
            quiz_id=str(quiz_id),
            total_attempts=int(data.get("totalAttempts", 0)),
            completion_rate=float(data.get("completionRate", 0.0)),
            average_score=float(data.get("averageScore", 0.0)),
            average_time_spent=float(data.get("averageTimeSpent", 0.0)),
            question_stats={qid: QuestionStat.from_dict(qid, s) for qid, s in stats.items()},
        )


def _non_negative(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(number) or number <= 0:
        return 0.0
    return number
