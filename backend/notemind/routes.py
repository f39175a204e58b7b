"""
REST API routes for the notemind workspace.

Organized into logical groups:
- Workspace: whole-workspace snapshot and search
- Notes: CRUD, analysis, chat and similar notes
- Tasks: action items derived from notes
- Events: calendar entries (derived or user-created)
- Images: image attachment rows
- Export: publish notes to GitHub

All routes except /health require the X-Workspace-Id header and are
workspace-scoped.
"""

import logging
from datetime import date

from flask import Blueprint, request, jsonify, g
from pydantic import ValidationError

from .identity import require_workspace
from .services.container import get_services
from .services.errors import (
    AnalysisInProgressError,
    EmbeddingError,
    EmptyInputError,
    ExtractionError,
    NotemindError,
    NoteNotFoundError,
    ReconcileError,
    SyncError,
)
from .services.models import EventCreate, NoteUpdate
from .services.note_chat import ChatMessage
from .services.state import WorkspaceStateStore

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)


def _json_error(message: str, status: int = 400, **extra):
    return jsonify({"error": message, **extra}), status


def _error_response(e: NotemindError):
    """Map a pipeline error onto an HTTP status."""
    if isinstance(e, EmptyInputError):
        return _json_error(e.message, 400)
    if isinstance(e, NoteNotFoundError):
        return _json_error(e.message, 404)
    if isinstance(e, AnalysisInProgressError):
        return _json_error(e.message, 409)
    if isinstance(e, (ExtractionError, EmbeddingError)):
        return _json_error(e.message, 502)
    if isinstance(e, ReconcileError):
        status = 502 if isinstance(e.cause, EmbeddingError) else 500
        return _json_error(
            e.message, status, step=e.step, completed_steps=e.completed_steps
        )
    if isinstance(e, SyncError):
        return _json_error(e.message, 400)
    return _json_error(e.message, 500)


def _parse_date(value):
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def _load_store(workspace_id: str) -> WorkspaceStateStore:
    store = WorkspaceStateStore(workspace_id)
    store.replace(get_services().storage.fetch_workspace(workspace_id))
    return store


@bp.get("/health")
def health():
    return jsonify({"status": "ok"})


# ============================================================================
# WORKSPACE
# ============================================================================


@bp.get("/workspace")
@require_workspace
def get_workspace():
    """
    Full workspace snapshot: notes, tasks and events.

    Query params:
        - q: Optional search over note title, content and summary

    Returns:
        JSON: {"workspace_id", "notes", "tasks", "events", "fetched_at"}
    """
    store = _load_store(g.workspace_id)
    payload = store.snapshot.model_dump(mode="json")

    query = request.args.get("q")
    if query:
        payload["notes"] = [n.model_dump(mode="json") for n in store.notes(query)]
    return jsonify(payload)


# ============================================================================
# NOTES ENDPOINTS
# ============================================================================


@bp.get("/notes")
@require_workspace
def list_notes():
    """
    List notes, most recently updated first.

    Returns:
        JSON: {"notes": [...], "total": int}
    """
    notes = get_services().storage.list_notes(g.workspace_id)
    return jsonify({"notes": [n.model_dump(mode="json") for n in notes], "total": len(notes)})


@bp.post("/notes")
@require_workspace
def create_note():
    """
    Create a note. Body fields are optional; defaults to an empty "Untitled Note".

    Body:
        JSON: {"title": str, "content": str}
    """
    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip() or "Untitled Note"
    content = data.get("content") or ""

    note = get_services().storage.create_note(g.workspace_id, title=title, content=content)
    return jsonify(note.model_dump(mode="json")), 201


@bp.get("/notes/<note_id>")
@require_workspace
def get_note(note_id: str):
    note = get_services().storage.get_note(g.workspace_id, note_id)
    if not note:
        return _json_error("Note not found", 404)
    return jsonify(note.model_dump(mode="json"))


@bp.patch("/notes/<note_id>")
@require_workspace
def update_note(note_id: str):
    """
    Update title and/or content.

    Body:
        JSON: {"title": str (optional), "content": str (optional)}
    """
    data = request.get_json(silent=True)
    if not data:
        return _json_error("No data provided")

    try:
        update = NoteUpdate.model_validate(data)
    except ValidationError as e:
        return _json_error(f"Invalid note update: {e.errors()[0]['msg']}")

    fields = update.model_dump(exclude_none=True)
    if not fields:
        return _json_error("Nothing to update: send 'title' and/or 'content'")

    try:
        note = get_services().storage.update_note_fields(g.workspace_id, note_id, fields)
    except NoteNotFoundError as e:
        return _error_response(e)
    return jsonify(note.model_dump(mode="json"))


@bp.delete("/notes/<note_id>")
@require_workspace
def delete_note(note_id: str):
    """Delete a note together with its tasks and images. Linked events are kept."""
    success = get_services().storage.delete_note(g.workspace_id, note_id)
    if not success:
        return _json_error("Note not found", 404)
    return jsonify({"success": True})


@bp.post("/notes/<note_id>/analyze")
@require_workspace
def analyze_note(note_id: str):
    """
    Run AI analysis on the note and reconcile derived state.

    Body (optional):
        JSON: {"reference_date": "YYYY-MM-DD"}

    Returns:
        JSON: Updated note plus the note's tasks
    """
    data = request.get_json(silent=True) or {}
    reference_date = None
    if data.get("reference_date"):
        reference_date = _parse_date(data["reference_date"])
        if reference_date is None:
            return _json_error("Body field 'reference_date' must be an ISO date")

    svc = get_services()
    try:
        note = svc.pipeline.analyze_note(g.workspace_id, note_id, reference_date=reference_date)
    except NotemindError as e:
        logger.error("analysis of note %s failed: %s", note_id, e)
        return _error_response(e)

    if note is None:
        return _json_error("Note was deleted during analysis", 409)

    tasks = svc.storage.list_tasks(g.workspace_id, note_id)
    return jsonify(
        {
            "note": note.model_dump(mode="json"),
            "tasks": [t.model_dump(mode="json") for t in tasks],
        }
    )


@bp.post("/notes/<note_id>/chat")
@require_workspace
def chat_with_note(note_id: str):
    """
    Ask a question about one note.

    Body:
        JSON: {"prompt": str, "history": [{"role": "user"|"model", "text": str}]}

    Returns:
        JSON: {"reply": str}
    """
    data = request.get_json(silent=True) or {}
    svc = get_services()

    note = svc.storage.get_note(g.workspace_id, note_id)
    if not note:
        return _json_error("Note not found", 404)

    try:
        history = [ChatMessage.model_validate(m) for m in data.get("history") or []]
    except ValidationError:
        return _json_error("Body field 'history' is malformed")

    try:
        reply = svc.chat.reply(note.content, history, data.get("prompt") or "")
    except EmptyInputError as e:
        return _error_response(e)
    except Exception as e:
        logger.error("chat for note %s failed: %s", note_id, e)
        return _json_error("Chat request failed", 502)
    return jsonify({"reply": reply})


@bp.get("/notes/<note_id>/similar")
@require_workspace
def similar_notes(note_id: str):
    """
    Notes closest to this one by embedding.

    Query params:
        - limit: Max results (default: 5)
    """
    try:
        limit = int(request.args.get("limit", 5))
    except ValueError:
        return _json_error("Query param 'limit' must be an integer")
    if limit < 1:
        return _json_error("Query param 'limit' must be at least 1")

    store = _load_store(g.workspace_id)
    if store.note(note_id) is None:
        return _json_error("Note not found", 404)

    results = store.similar_notes(note_id, limit=limit)
    return jsonify({"results": [r.model_dump(mode="json") for r in results]})


@bp.get("/notes/<note_id>/tasks")
@require_workspace
def list_note_tasks(note_id: str):
    svc = get_services()
    if not svc.storage.get_note(g.workspace_id, note_id):
        return _json_error("Note not found", 404)
    tasks = svc.storage.list_tasks(g.workspace_id, note_id)
    return jsonify({"tasks": [t.model_dump(mode="json") for t in tasks]})


# ============================================================================
# TASKS
# ============================================================================


@bp.patch("/tasks/<task_id>")
@require_workspace
def update_task(task_id: str):
    """
    Mark a task done or not done.

    Body:
        JSON: {"completed": bool}
    """
    data = request.get_json(silent=True) or {}
    completed = data.get("completed")
    if not isinstance(completed, bool):
        return _json_error("Body field 'completed' must be a boolean")

    task = get_services().storage.set_task_completed(g.workspace_id, task_id, completed)
    if not task:
        return _json_error("Task not found", 404)
    return jsonify(task.model_dump(mode="json"))


# ============================================================================
# EVENTS
# ============================================================================


@bp.get("/events")
@require_workspace
def list_events():
    """
    List events, optionally for a single day.

    Query params:
        - date: YYYY-MM-DD (optional)
    """
    on_date = None
    if request.args.get("date"):
        on_date = _parse_date(request.args["date"])
        if on_date is None:
            return _json_error("Query param 'date' must be an ISO date")

    events = get_services().storage.list_events(g.workspace_id, on_date=on_date)
    return jsonify({"events": [e.model_dump(mode="json") for e in events]})


@bp.post("/events")
@require_workspace
def create_event():
    """
    Create a calendar event.

    Body:
        JSON: {"title": str, "event_date": "YYYY-MM-DD", "description"?, "start_time"?,
               "end_time"?, "note_id"?}
    """
    data = request.get_json(silent=True)
    if not data:
        return _json_error("No data provided")

    try:
        payload = EventCreate.model_validate(data)
    except ValidationError as e:
        return _json_error(f"Invalid event: {e.errors()[0]['msg']}")

    event = get_services().storage.create_event(g.workspace_id, payload)
    return jsonify(event.model_dump(mode="json")), 201


@bp.delete("/events/<event_id>")
@require_workspace
def delete_event(event_id: str):
    success = get_services().storage.delete_event(g.workspace_id, event_id)
    if not success:
        return _json_error("Event not found", 404)
    return jsonify({"success": True})


# ============================================================================
# IMAGES
# ============================================================================


@bp.get("/notes/<note_id>/images")
@require_workspace
def list_images(note_id: str):
    images = get_services().storage.list_images(g.workspace_id, note_id)
    return jsonify({"images": [i.model_dump(mode="json") for i in images]})


@bp.post("/notes/<note_id>/images")
@require_workspace
def add_image(note_id: str):
    """
    Attach an image URL to a note.

    Body:
        JSON: {"image_url": str}
    """
    data = request.get_json(silent=True) or {}
    image_url = (data.get("image_url") or "").strip()
    if not image_url:
        return _json_error("Body field 'image_url' is required")

    try:
        image = get_services().storage.add_image(g.workspace_id, note_id, image_url)
    except NoteNotFoundError as e:
        return _error_response(e)
    return jsonify(image.model_dump(mode="json")), 201


@bp.delete("/images/<image_id>")
@require_workspace
def delete_image(image_id: str):
    success = get_services().storage.delete_image(g.workspace_id, image_id)
    if not success:
        return _json_error("Image not found", 404)
    return jsonify({"success": True})


# ============================================================================
# EXPORT
# ============================================================================


@bp.post("/export/github")
@require_workspace
def export_to_github():
    """
    Publish every note in the workspace to a GitHub repository.

    Body (optional, falls back to configuration):
        JSON: {"repo_url": str, "token": str, "branch": str}

    Returns:
        JSON: {"published": [...], "failures": {note_id: message}, "ok": bool}
        with 207 when some notes failed
    """
    data = request.get_json(silent=True) or {}
    svc = get_services()

    notes = svc.storage.list_notes(g.workspace_id)
    try:
        report = svc.exporter.export(
            notes,
            repo_url=data.get("repo_url"),
            token=data.get("token"),
            branch=data.get("branch"),
        )
    except SyncError as e:
        return _error_response(e)

    return jsonify({**report.model_dump(), "ok": report.ok}), (200 if report.ok else 207)
