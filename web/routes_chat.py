"""Public routes Blueprint: ask a question, leave feedback on an answer source.

Blueprint: chat (no url_prefix)
"""

from flask import Blueprint, jsonify

from web.helpers import get_services, json_body

bp = Blueprint("chat", __name__)


@bp.route("/api/chat", methods=["POST"])
def api_chat():
    """Answer a question from the knowledge base or queue it for the team.

    Body: {"question": str, "sessionId": str (optional)}
    """
    data = json_body()
    session_id = data.get("sessionId") or data.get("session_id")
    result = get_services().orchestrator.ask(data.get("question"), session_id)
    return jsonify(result.to_dict())


@bp.route("/api/kb/<int:entry_id>/feedback", methods=["POST"])
def api_feedback(entry_id):
    """Body: {"kind": "like" | "review_request"}"""
    entry = get_services().workflow.feedback(entry_id, json_body().get("kind"))
    return jsonify({
        "id": entry.id,
        "like_count": entry.like_count,
        "review_count": entry.review_count,
    })
