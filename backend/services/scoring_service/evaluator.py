"""
Answer grading for every supported question type.

`evaluate` never raises for bad input: an unknown question type or a
malformed submission grades as incorrect so the rest of the attempt can
still be scored.
"""

from __future__ import annotations
from typing import Optional

from .models import EvaluatedAnswer, Question, SubmittedAnswer


def evaluate(question: Question, submitted: SubmittedAnswer) -> EvaluatedAnswer:
    """Grade one submitted answer against its question definition."""
    if question.type.is_choice:
        user_answer = _selected_text(question, submitted)
        is_correct = user_answer is not None and user_answer == _choice_key(question)
    elif question.type.is_free_text:
        user_answer = normalize_text(submitted.short_answer)
        is_correct = bool(user_answer) and user_answer in {
            a.strip().lower() for a in question.accepted_answers
        }
    else:
        # QuestionType.UNKNOWN
        user_answer = _raw_submission(submitted)
        is_correct = False

    return EvaluatedAnswer(
        question_id=question.id,
        user_answer=user_answer,
        is_correct=is_correct,
        time_spent=submitted.time_spent,
    )


def normalize_text(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _choice_key(question: Question) -> Optional[str]:
    """The text a correct selection must equal (case-sensitive)."""
    correct = question.correct_answer
    if isinstance(correct, bool):
        key = "true" if correct else "false"
        # Boolean answers match whichever casing the options use
        for option in question.options:
            if option.lower() == key:
                return option
        return key
    if isinstance(correct, (list, tuple)):
        correct = correct[0] if correct else None
    return None if correct is None else str(correct)


def _selected_text(question: Question, submitted: SubmittedAnswer) -> Optional[str]:
    """
    Resolve the single selected option to its text.
    A selection id is either the option text itself or its zero-based
    index; anything other than exactly one selection yields None.
    """
    selected = submitted.selected_option_ids
    if not selected or len(set(selected)) != 1:
        return None

    option_id = selected[0]
    if not question.options or option_id in question.options:
        return option_id
    if option_id.isdigit() and int(option_id) < len(question.options):
        return question.options[int(option_id)]
    return option_id


def _raw_submission(submitted: SubmittedAnswer):
    if submitted.short_answer is not None:
        return submitted.short_answer
    if submitted.selected_option_ids:
        return list(submitted.selected_option_ids)
    return None

