"""Sample quizzes and helpers shared by the scoring tests."""

from datetime import datetime, timezone

from backend.services.scoring_service.models import Quiz
from backend.services.scoring_service.store import MemoryScoringStore

AUTHOR = "author-uid"

CARDIO_QUIZ = {
    "title": "Cardiology basics",
    "createdBy": AUTHOR,
    "questions": [
        {
            "id": "q1",
            "type": "multiple-choice",
            "options": ["Option A", "Option B", "Option C"],
            "correctAnswer": "Option B",
        },
        {"id": "q2", "type": "true-false", "options": ["True", "False"], "correctAnswer": True},
        {
            "id": "q3",
            "type": "short-answer",
            "correctAnswer": ["myocardial infarction", "heart attack"],
        },
        {
            "id": "q4",
            "type": "image-identification",
            "correctAnswer": ["left ventricle", "LV"],
        },
    ],
}

CARDIO_ANSWERS = [
    {"questionId": "q1", "selectedOptionIds": ["Option B"], "timeSpent": 12},
    {"questionId": "q2", "selectedOptionIds": ["False"], "timeSpent": 5},
    {"questionId": "q3", "shortAnswer": "  Heart Attack  ", "timeSpent": 20},
]


def twenty_question_quiz():
    return {
        "title": "Anatomy drill",
        "createdBy": AUTHOR,
        "questions": [
            {"id": f"a{i}", "type": "multiple-choice", "options": ["Yes", "No"], "correctAnswer": "Yes"}
            for i in range(1, 21)
        ],
    }


def answers_scoring(correct, total=20):
    """Answers for the 20-question drill with exactly `correct` right."""
    return [
        {"questionId": f"a{i}", "selectedOptionIds": ["Yes" if i <= correct else "No"], "timeSpent": 5}
        for i in range(1, total + 1)
    ]


def at(day, hour=12):
    return datetime(2026, 3, day, hour, 0, tzinfo=timezone.utc)


def make_store(store_cls=MemoryScoringStore):
    store = store_cls()
    store.put_quiz("cardio", CARDIO_QUIZ)
    store.put_quiz("drill", twenty_question_quiz())
    store.put_quiz("empty", {"title": "Draft", "createdBy": AUTHOR, "questions": []})
    return store


def cardio_quiz():
    return Quiz.from_dict("cardio", CARDIO_QUIZ)


def auth(uid="student-1"):
    """Headers for a caller; the tests treat the bearer token as the uid."""
    return {"Authorization": f"Bearer {uid}"}
