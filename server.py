#!/usr/bin/env python3
"""QA Autopilot - JSON API server for the browser front end."""

import logging
import os
import sys
import threading
import time
import uuid

from flask import Blueprint, Flask, Response, jsonify, request

from config.defaults import DEFAULTS
from config.schemas import SCHEMAS
from config.settings import Settings
from core.artifacts import ARTIFACT_KINDS, export_artifact
from core.errors import ConfigError, InputError, RunInProgressError
from core.orchestrator import Orchestrator
from core.state import Framework, PipelineState
from utils.project_files import files_from_payload, files_from_uploads

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)
orchestrator = Orchestrator()

# Sessions keyed by session_id: {id: {"state": ..., "created": timestamp}}
_sessions = {}
_sessions_lock = threading.Lock()


def _cleanup_sessions():
    """Remove expired sessions. Called under _sessions_lock."""
    now = time.time()
    ttl = DEFAULTS["session_ttl"]
    expired = [sid for sid, s in _sessions.items()
               if now - s["created"] > ttl and not s["state"].busy]
    for sid in expired:
        del _sessions[sid]
    # If still over limit, remove oldest idle sessions
    limit = DEFAULTS["max_sessions"]
    if len(_sessions) > limit:
        idle = sorted((item for item in _sessions.items() if not item[1]["state"].busy),
                      key=lambda x: x[1]["created"])
        for sid, _ in idle[:len(_sessions) - limit]:
            del _sessions[sid]


def _store_session(state):
    """Store a session and return its ID."""
    session_id = str(uuid.uuid4())[:8]
    with _sessions_lock:
        _cleanup_sessions()
        _sessions[session_id] = {"state": state, "created": time.time()}
    return session_id


def _get_session_state(session_id):
    """Get state for a session ID, or None if not found/expired."""
    with _sessions_lock:
        session = _sessions.get(session_id)
        if not session:
            return None
        if time.time() - session["created"] > DEFAULTS["session_ttl"] and not session["state"].busy:
            _sessions.pop(session_id, None)
            return None
        return session["state"]


def _session_to_dict(session_id, state):
    result = state.to_dict()
    result["session_id"] = session_id
    return result


def _error(message, status):
    return jsonify({"error": message}), status


def _read_inputs():
    """Parse files, seed text and framework from a JSON or multipart body.

    Returns (files, seed_requirements, framework, skipped). A field missing
    from the body comes back as None. Raises ValueError on malformed input.
    """
    if request.is_json:
        data = request.get_json(silent=True) or {}
        files = files_from_payload(data["files"]) if "files" in data else None
        seed = data.get("seed_requirements")
        framework = data.get("framework")
        skipped = []
    else:
        uploads = request.files.getlist("files")
        files, skipped = files_from_uploads(uploads) if uploads else (None, [])
        seed = request.form.get("seed_requirements")
        framework = request.form.get("framework")

    if seed is not None and not isinstance(seed, str):
        raise ValueError("seed_requirements must be a string")
    if framework:
        framework = Framework.parse(framework)
    return files, seed, (framework or None), skipped


def _run_in_background(state, run_id):
    """Execute the stage chain on a worker thread."""
    def worker():
        try:
            orchestrator.execute_run(state, run_id)
        except Exception:
            logger.exception("Run %d crashed", run_id)

    thread = threading.Thread(target=worker, name=f"autopilot-run-{run_id}", daemon=True)
    thread.start()
    return thread


@api.route("/api/frameworks")
def api_frameworks():
    return jsonify([
        {"name": f.value, "display_name": f.display_name, "filename": f.filename}
        for f in Framework
    ])


@api.route("/api/schemas")
def api_schemas():
    return jsonify(SCHEMAS)


@api.route("/api/sessions", methods=["POST"])
def api_create_session():
    """Create a session from uploaded files (+ optional seed text and framework)."""
    try:
        files, seed, framework, skipped = _read_inputs()
    except ValueError as e:
        return _error(str(e), 400)

    state = PipelineState()
    state.reset_inputs(files or [], seed or None)
    state.framework = framework or Framework.parse(DEFAULTS["default_framework"])

    session_id = _store_session(state)
    result = _session_to_dict(session_id, state)
    result["skipped_files"] = skipped
    return jsonify(result), 201


@api.route("/api/sessions/<session_id>", methods=["GET"])
def api_session_status(session_id):
    state = _get_session_state(session_id)
    if not state:
        return _error("Session not found", 404)
    return jsonify(_session_to_dict(session_id, state))


@api.route("/api/sessions/<session_id>/inputs", methods=["PUT"])
def api_replace_inputs(session_id):
    """New files or seed text reset the session to IDLE. Omitted fields are kept."""
    state = _get_session_state(session_id)
    if not state:
        return _error("Session not found", 404)
    try:
        files, seed, framework, skipped = _read_inputs()
        orchestrator.update_inputs(state, files, seed, framework)
    except RunInProgressError as e:
        return _error(str(e), 409)
    except ValueError as e:
        return _error(str(e), 400)

    result = _session_to_dict(session_id, state)
    result["skipped_files"] = skipped
    return jsonify(result)


@api.route("/api/sessions/<session_id>/framework", methods=["PUT"])
def api_set_framework(session_id):
    state = _get_session_state(session_id)
    if not state:
        return _error("Session not found", 404)
    data = request.get_json(silent=True) or {}
    try:
        orchestrator.update_inputs(state, framework=data.get("framework") or "")
    except RunInProgressError as e:
        return _error(str(e), 409)
    except ValueError as e:
        return _error(str(e), 400)
    return jsonify(_session_to_dict(session_id, state))


@api.route("/api/sessions/<session_id>/run", methods=["POST"])
def api_start_run(session_id):
    """Start trigger. Stages run in the background; poll the session for progress."""
    state = _get_session_state(session_id)
    if not state:
        return _error("Session not found", 404)
    data = request.get_json(silent=True) or {}
    try:
        framework = Framework.parse(data["framework"]) if data.get("framework") else None
        run_id = orchestrator.start_run(state, framework=framework)
    except InputError as e:
        return _error(f"Please upload project files before starting ({e}).", 400)
    except RunInProgressError as e:
        return _error(str(e), 409)
    except ValueError as e:
        return _error(str(e), 400)

    _run_in_background(state, run_id)
    return jsonify(_session_to_dict(session_id, state)), 202


@api.route("/api/sessions/<session_id>/cancel", methods=["POST"])
def api_cancel_run(session_id):
    state = _get_session_state(session_id)
    if not state:
        return _error("Session not found", 404)
    cancelled = orchestrator.cancel(state)
    result = _session_to_dict(session_id, state)
    result["cancelled"] = cancelled
    return jsonify(result)


@api.route("/api/sessions/<session_id>/artifacts/<kind>")
def api_download_artifact(session_id, kind):
    state = _get_session_state(session_id)
    if not state:
        return _error("Session not found", 404)
    if kind not in ARTIFACT_KINDS:
        return _error(f"Unknown artifact '{kind}'", 404)
    try:
        filename, content, mimetype = export_artifact(state.results, kind, state.framework)
    except LookupError as e:
        return _error(str(e), 404)
    return Response(
        content,
        mimetype=f"{mimetype}; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def create_app(settings=None):
    """Build the Flask app.

    Settings are read from the environment when not given, so a missing
    ANTHROPIC_API_KEY raises ConfigError before any request is served.
    `flask --app server run` picks this factory up as well.
    """
    orchestrator.configure(settings or Settings.from_env())
    app = Flask(__name__)
    app.register_blueprint(api)
    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        app = create_app()
    except ConfigError as e:
        sys.exit(str(e))
    port = int(os.environ.get("PORT", 5001))
    print(f"QA Autopilot running at http://localhost:{port}")
    app.run(debug=False, port=port, threaded=True)
