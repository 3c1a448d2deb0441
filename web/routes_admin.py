"""Admin routes Blueprint: pending-question queue and knowledge-base CRUD.

Contains:
- Pending queue listing, promote (answer) and dismiss
- Knowledge base list / add / edit / delete

Access control is handled in front of the app and is not enforced here.
"""

from flask import Blueprint, jsonify

from web.helpers import get_services, json_body

bp = Blueprint("admin", __name__)


# ---------------------------------------------------------------------------
# Pending questions
# ---------------------------------------------------------------------------

@bp.route("/api/pending")
def api_pending():
    """Questions still waiting for an answer, newest first."""
    items = get_services().workflow.list_pending()
    return jsonify([p.to_dict() for p in items])


@bp.route("/api/pending/all")
def api_pending_all():
    """Every pending row, including answered and dismissed ones."""
    items = get_services().workflow.list_all_pending()
    return jsonify([p.to_dict() for p in items])


@bp.route("/api/pending/<int:pending_id>/answer", methods=["POST"])
def api_pending_answer(pending_id):
    """Promote a pending question into the knowledge base."""
    entry = get_services().workflow.promote(pending_id, json_body().get("answer"))
    return jsonify({"message": "Answer saved to knowledge base.", "kbId": entry.id})


@bp.route("/api/pending/<int:pending_id>/dismiss", methods=["POST"])
def api_pending_dismiss(pending_id):
    get_services().workflow.dismiss(pending_id)
    return jsonify({"message": "Question dismissed."})


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------

@bp.route("/api/kb")
def api_kb_list():
    entries = get_services().workflow.list_knowledge()
    return jsonify([e.to_dict() for e in entries])


@bp.route("/api/kb", methods=["POST"])
def api_kb_add():
    data = json_body()
    entry = get_services().workflow.add_entry(data.get("question"), data.get("answer"))
    return jsonify({"id": entry.id, "message": "Entry added to knowledge base."}), 201


@bp.route("/api/kb/<int:entry_id>", methods=["PUT"])
def api_kb_edit(entry_id):
    get_services().workflow.edit_entry(entry_id, json_body().get("answer"))
    return jsonify({"message": "Entry updated."})


@bp.route("/api/kb/<int:entry_id>", methods=["DELETE"])
def api_kb_delete(entry_id):
    get_services().workflow.delete_entry(entry_id)
    return jsonify({"message": "Entry deleted."})
