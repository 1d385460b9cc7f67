from flask import Blueprint, request, url_for, jsonify, current_app
from functools import wraps
import time
import uuid

from .editor import SessionEditor
from .errors import BackendError, VideoWorkflowError
from .videos import VideoFile


online_sessions = Blueprint('online_sessions', __name__)


def backend():
    return current_app.extensions['backend_client']


def get_editor(editor_id):
    with current_app.extensions['session_editors_lock']:
        editor = current_app.extensions['session_editors'].get(editor_id)
        if editor:
            editor.touch()
    return editor


def discard_editor(editor_id):
    with current_app.extensions['session_editors_lock']:
        editor = current_app.extensions['session_editors'].pop(editor_id, None)
    if editor:
        editor.close()
    return editor


def discard_idle_editors():
    """Close editors whose page was left without closing them."""
    idle_seconds = current_app.config['EDITOR_IDLE_SECONDS']
    now = time.monotonic()
    with current_app.extensions['session_editors_lock']:
        editors = current_app.extensions['session_editors']
        idle = [editor_id for editor_id, editor in editors.items() if editor.idle_for(now) >= idle_seconds]
        closed = [editors.pop(editor_id) for editor_id in idle]
    for editor in closed:
        editor.close()
    if closed:
        current_app.logger.info(f"Closed {len(closed)} idle session editor(s)")


def editor_route(f):
    """Decorator that loads the editor from the URL and turns editor refusals into 400s."""
    @wraps(f)
    def decorated_function(editor_id, *args, **kwargs):
        editor = get_editor(editor_id)
        if editor is None:
            return jsonify({"success": False, "message": "Editor not found or already closed."}), 404
        try:
            return f(editor, *args, **kwargs)
        except IndexError as e:
            return jsonify({"success": False, "message": str(e)}), 400
        except VideoWorkflowError as e:
            return jsonify({"success": False, "message": e.message, "state": editor.state()}), 400
    return decorated_function


def json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def payload():
    return json_body() or request.form.to_dict()


@online_sessions.route('/', methods=['GET'])
def list_sessions():
    try:
        sessions = backend().list_sessions(refresh=request.args.get('refresh') == '1')
    except BackendError as e:
        current_app.logger.error(f"Could not load online sessions: {e.message}")
        return jsonify({"success": False, "message": e.message}), 502
    return jsonify({"success": True, "sessions": sessions})


@online_sessions.route('/<session_id>/editor', methods=['POST'])
def open_editor(session_id):
    discard_idle_editors()

    try:
        editor = SessionEditor.open(
            session_id,
            backend(),
            error_display_seconds=current_app.config['ERROR_DISPLAY_SECONDS'],
            max_size_mb=current_app.config['MAX_VIDEO_SIZE_MB'],
            tick_seconds=current_app.config['PROGRESS_TICK_SECONDS'],
        )
    except BackendError as e:
        current_app.logger.error(f"Could not load online session {session_id}: {e.message}")
        return jsonify({"success": False, "message": e.message}), 502

    if editor is None:
        return jsonify({"success": False, "message": "Session not found."}), 404

    editor_id = uuid.uuid4().hex
    with current_app.extensions['session_editors_lock']:
        current_app.extensions['session_editors'][editor_id] = editor

    return jsonify({"success": True, "editor_id": editor_id, "state": editor.state()}), 201


@online_sessions.route('/editor/<editor_id>', methods=['GET'])
@editor_route
def editor_state(editor):
    return jsonify({"success": True, "state": editor.state()})


@online_sessions.route('/editor/<editor_id>', methods=['DELETE'])
def close_editor(editor_id):
    if discard_editor(editor_id) is None:
        return jsonify({"success": False, "message": "Editor not found or already closed."}), 404
    return jsonify({"success": True})


@online_sessions.route('/editor/<editor_id>/fields', methods=['POST'])
@editor_route
def update_fields(editor):
    editor.set_fields(**payload())
    return jsonify({"success": True, "state": editor.state()})


#=================================================================
#Video entries
#=================================================================

@online_sessions.route('/editor/<editor_id>/videos', methods=['POST'])
@editor_route
def add_video(editor):
    index = editor.add_entry()
    return jsonify({"success": True, "index": index, "state": editor.state()}), 201


@online_sessions.route('/editor/<editor_id>/videos/<int:index>', methods=['DELETE'])
@editor_route
def remove_video(editor, index):
    editor.remove_entry(index)
    return jsonify({"success": True, "state": editor.state()})


@online_sessions.route('/editor/<editor_id>/videos/<int:index>/source', methods=['POST'])
@editor_route
def change_video_source(editor, index):
    editor.set_source(index, payload().get('source'))
    return jsonify({"success": True, "state": editor.state()})


@online_sessions.route('/editor/<editor_id>/videos/<int:index>/mode', methods=['POST'])
@editor_route
def change_vdocipher_option(editor, index):
    editor.set_hosted_mode(index, payload().get('mode'))
    return jsonify({"success": True, "state": editor.state()})


@online_sessions.route('/editor/<editor_id>/videos/<int:index>/youtube_url', methods=['POST'])
@editor_route
def change_youtube_url(editor, index):
    editor.set_youtube_url(index, payload().get('youtube_url'))
    return jsonify({"success": True, "state": editor.state()})


@online_sessions.route('/editor/<editor_id>/videos/<int:index>/video_id', methods=['POST'])
@editor_route
def change_vdocipher_video_id(editor, index):
    editor.set_hosted_video_id(index, payload().get('video_id'))
    return jsonify({"success": True, "state": editor.state()})


@online_sessions.route('/editor/<editor_id>/videos/<int:index>/file', methods=['POST'])
@editor_route
def upload_video_file(editor, index):
    file = request.files.get('file')
    if not file or file.filename == '':
        return jsonify({"success": False, "message": "No file selected."}), 400

    video_file = VideoFile(filename=file.filename, content_type=file.mimetype or '', data=file.read())
    editor.select_file(index, video_file)
    return jsonify({"success": True, "state": editor.state()}), 202


@online_sessions.route('/editor/<editor_id>/videos/<int:index>/file', methods=['DELETE'])
@editor_route
def remove_video_file(editor, index):
    editor.clear_file(index)
    return jsonify({"success": True, "state": editor.state()})


@online_sessions.route('/editor/<editor_id>/videos/<int:index>/preview', methods=['GET'])
@editor_route
def video_preview(editor, index):
    preview = editor.store.get_preview(editor.store.entry_at(index).key)
    if not preview:
        return jsonify({"success": False, "message": "No preview available."}), 404
    return jsonify({"success": True, "preview": preview})


#=================================================================
#Submit
#=================================================================

@online_sessions.route('/editor/<editor_id>/submit', methods=['POST'])
@editor_route
def submit_session(editor):
    data = json_body()
    if data:
        editor.set_fields(**data)

    if not editor.submit():
        state = editor.state()
        return jsonify({"success": False, "errors": state["errors"], "state": state}), 400

    discard_editor(request.view_args['editor_id'])
    return jsonify({
        "success": True,
        "message": "Session updated successfully!",
        "redirect_url": url_for('online_sessions.list_sessions'),
    })
