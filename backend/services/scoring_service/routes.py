# services/scoring_service/routes.py
import logging

from flask import Blueprint, request, jsonify
from werkzeug.exceptions import HTTPException

from ...auth_middleware import require_auth
from . import achievements
from . import progression
from . import results
from .errors import ScoringError, ValidationError
from .store import get_store

logger = logging.getLogger(__name__)

scoring_bp = Blueprint("scoring_bp", __name__)


def _json_body():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@scoring_bp.errorhandler(ScoringError)
def handle_scoring_error(e):
    body = {"ok": False, "error": e.message}
    if e.retryable:
        body["retryable"] = True
    return jsonify(body), e.status


@scoring_bp.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception("[%s] Unhandled error", request.path)
    return jsonify({"ok": False, "error": "Internal server error"}), 500

# -------------------- Quiz Results --------------------

@scoring_bp.post("/quizzes/<quiz_id>/results")
@require_auth
def submit_result(quiz_id):
    """
    Grade and store one quiz attempt.

    Request body:
    {
        "answers": [
            {"questionId": "q1", "selectedOptionIds": ["Aorta"], "timeSpent": 12},
            {"questionId": "q2", "shortAnswer": "femur", "timeSpent": 30}
        ],
        "timeSpent": 42
    }

    Response (201):
    {
        "ok": true,
        "result": {"id": "...", "score": 2, "totalQuestions": 2, "improvement": "+15%", ...},
        "progress": {"xpEarned": 50, "newLevel": 3, ...},
        "analyticsUpdated": true,
        "partial": false
    }
    """
    uid = request.user["uid"]
    data = _json_body()
    answers = data.get("answers")
    logger.info("[quiz/submit] %s on quiz %s: %d answers", uid, quiz_id, len(answers) if isinstance(answers, list) else 0)

    outcome = results.submit_attempt(get_store(), quiz_id, uid, data)
    if outcome.partial:
        logger.warning(
            "[quiz/submit] Result %s stored with pending effects: %s",
            outcome.result.id, [w.effect for w in outcome.warnings],
        )
    return jsonify(outcome.to_payload()), 201


@scoring_bp.get("/results")
@require_auth
def list_results():
    """
    GET /api/quiz/results?quizId=abc

    User's own results, most recent first, with summary stats.
    """
    uid = request.user["uid"]
    quiz_id = request.args.get("quizId") or None
    return jsonify(results.list_results(get_store(), uid, quiz_id)), 200


@scoring_bp.get("/results/<result_id>")
@require_auth
def get_result(result_id):
    uid = request.user["uid"]
    result = results.get_result(get_store(), result_id, uid)
    return jsonify({"ok": True, "result": result.to_json()}), 200


@scoring_bp.post("/results/<result_id>/reconcile")
@require_auth
def reconcile_result(result_id):
    """Re-apply progress/analytics updates that did not land when the result was stored."""
    uid = request.user["uid"]
    outcome = results.reconcile_result(get_store(), result_id, uid)
    logger.info("[quiz/reconcile] %s: partial=%s", result_id, outcome.partial)
    return jsonify(outcome.to_payload()), 200

# -------------------- Gamification --------------------

@scoring_bp.post("/activity")
@require_auth
def record_activity():
    """
    Record a flashcard review or a quiz completed outside the results flow.

    Request body:
    {
        "activityType": "flashcard" | "quiz",
        "isCorrect": true,          # flashcard only
        "correctAnswers": 8,        # quiz, optional
        "totalQuestions": 10        # quiz, optional
    }

    Response:
    {
        "ok": true,
        "xpEarned": 10,
        "totalXp": 250,
        "newLevel": 3,
        "levelUp": false,
        "dailyGoalMet": false,
        "streakUpdated": {"currentStreak": 4, "longestStreak": 9},
        "newAchievements": [...]
    }
    """
    uid = request.user["uid"]
    data = _json_body()
    outcome = progression.ActivityOutcome.from_payload(data)

    report = progression.record_activity(get_store(), uid, outcome)
    logger.info("[quiz/activity] %s %s: +%d XP", uid, outcome.activity_type, report.xp_earned)
    return jsonify({"ok": True, **report.to_payload()}), 200


@scoring_bp.post("/streak")
@require_auth
def check_in():
    uid = request.user["uid"]
    payload = progression.check_in(get_store(), uid)
    return jsonify({"ok": True, **payload}), 200


@scoring_bp.post("/study-time")
@require_auth
def add_study_time():
    """Request body: {"minutes": 25}"""
    uid = request.user["uid"]
    data = _json_body()
    payload = progression.add_study_time(get_store(), uid, data.get("minutes"))
    return jsonify({"ok": True, **payload}), 200


@scoring_bp.post("/xp")
@require_auth
def award_xp():
    """Request body: {"amount": 50, "reason": "case-study"}"""
    uid = request.user["uid"]
    data = _json_body()
    reason = data.get("reason")
    payload = progression.award_xp(get_store(), uid, data.get("amount"), reason if isinstance(reason, str) else None)
    return jsonify({"ok": True, **payload}), 200


@scoring_bp.get("/profile")
@require_auth
def get_profile():
    uid = request.user["uid"]
    return jsonify(progression.get_profile(get_store(), uid)), 200


@scoring_bp.get("/achievements")
def achievement_catalog():
    """Every unlockable achievement (public)."""
    return jsonify({"ok": True, "achievements": achievements.achievement_catalog()}), 200
