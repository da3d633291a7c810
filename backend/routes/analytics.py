# routes/analytics.py
"""
Analytics API routes for quiz authors.
"""
import logging

from flask import Blueprint, request, jsonify

from ..auth_middleware import require_auth
from ..services.scoring_service import analytics
from ..services.scoring_service.errors import ScoringError
from ..services.scoring_service.store import get_store

logger = logging.getLogger(__name__)

analytics_bp = Blueprint("analytics", __name__)


@analytics_bp.errorhandler(ScoringError)
def handle_scoring_error(e):
    return jsonify({"ok": False, "error": e.message}), e.status


@analytics_bp.get("/quizzes/<quiz_id>")
@require_auth
def quiz_analytics(quiz_id):
    """
    GET /api/analytics/quizzes/<quiz_id>

    Attempt counts, completion rate, average score/time and per-question
    stats for a quiz the caller authored, plus the caller's own standing
    (percentile, rank) and score trend on it.
    """
    uid = request.user["uid"]
    logger.info("[analytics/quiz] %s requested %s", uid, quiz_id)
    return jsonify(analytics.get_analytics(get_store(), quiz_id, uid)), 200
