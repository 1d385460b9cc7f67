# submission.py

import logging

from .errors import DuplicateConflict, InvariantViolation, VideoWorkflowError
from .videos import SOURCE_VDOCIPHER, SOURCE_YOUTUBE, extract_youtube_id

logger = logging.getLogger(__name__)

PAYMENT_STATES = ("paid", "free")


def is_candidate(store, entry):
    if entry.is_youtube:
        return bool(entry.youtube_url and entry.youtube_url.strip())
    if entry.is_hosted_by_id:
        return bool(entry.hosted_video_id and entry.hosted_video_id.strip())
    if entry.is_hosted_upload:
        return entry.uploaded_video_id is not None or store.is_uploading(entry.key)
    return False


def check_fields(fields):
    errors = {}
    if not (fields.get("grade") or "").strip():
        errors["grade"] = "❌ Grade is required"
    if not (fields.get("week") or "").strip():
        errors["week"] = "❌ Attendance week is required"
    if fields.get("payment_state") not in PAYMENT_STATES:
        errors["payment_state"] = "❌ Video Payment State is required"
    if not (fields.get("name") or "").strip():
        errors["name"] = "❌ Name is required"
    return errors


def check_entries_locally(store):
    """
    Checks that need no network, for every entry.

    Returns (errors, remote) where `remote` lists (index, video_id) of the
    VdoCipher IDs still to confirm with the video host.
    """
    errors = {}
    remote = []
    with store.lock:
        candidates = [entry for entry in store.entries if is_candidate(store, entry)]
        if not candidates:
            errors["videos"] = "❌ At least one valid video is required"

        for index, entry in enumerate(store.entries):
            if entry.is_youtube:
                url = (entry.youtube_url or "").strip()
                if not url:
                    errors[f"video_{index}_youtube_url"] = "❌ YouTube URL is required"
                elif not extract_youtube_id(url):
                    errors[f"video_{index}_youtube_url"] = "❌ Invalid YouTube URL"

            elif entry.is_hosted_by_id:
                video_id = (entry.hosted_video_id or "").strip()
                if not video_id:
                    errors[f"video_{index}_hosted_video_id"] = "❌ VdoCipher Video ID is required"
                else:
                    remote.append((index, video_id))

            elif entry.is_hosted_upload:
                if store.is_uploading(entry.key):
                    errors[f"video_{index}_hosted_file"] = "❌ Please wait for video upload to complete"
                elif not entry.uploaded_video_id and not entry.pending_file:
                    errors[f"video_{index}_hosted_file"] = "❌ Please select and upload a video file"

    return errors, remote


def check_hosted_ids(client, remote):
    """Ask the video host about each ID, one after the other, in list order."""
    errors = {}
    for index, video_id in remote:
        try:
            client.validate_hosted_video_id(video_id)
        except VideoWorkflowError as e:
            logger.info("VdoCipher video %s rejected: %s", video_id, e.message)
            errors[f"video_{index}_hosted_video_id"] = e.message
    return errors


def _same_week(value, week_number):
    try:
        return int(value) == week_number
    except (TypeError, ValueError):
        return False


def find_duplicate_session(sessions, session_id, grade, week_number):
    """Another session (not `session_id`) with the same grade and week, or None."""
    for session in sessions:
        if str(session.get("_id")) == str(session_id):
            continue
        if session.get("grade") == grade and _same_week(session.get("week"), week_number):
            return session
    return None


def check_duplicate(sessions, session_id, grade, week_number):
    if find_duplicate_session(sessions, session_id, grade, week_number):
        raise DuplicateConflict("❌ A session with this grade and week already exists", field="general")


def assemble_videos(store):
    """
    The [{video_type, video_id}] list sent to the backend, in entry order.

    Raises InvariantViolation if an upload entry has no uploaded ID.
    """
    videos = []
    with store.lock:
        for index, entry in enumerate(store.entries):
            if entry.is_youtube:
                video_id = extract_youtube_id((entry.youtube_url or "").strip())
                if video_id:
                    videos.append({"video_type": SOURCE_YOUTUBE, "video_id": video_id})
            elif entry.is_hosted_by_id:
                video_id = (entry.hosted_video_id or "").strip()
                if video_id:
                    videos.append({"video_type": SOURCE_VDOCIPHER, "video_id": video_id})
            elif entry.is_hosted_upload:
                if not entry.uploaded_video_id:
                    raise InvariantViolation(
                        "❌ Video upload is not complete. Please wait for upload to finish.",
                        field=f"video_{index}_hosted_file",
                    )
                videos.append({"video_type": SOURCE_VDOCIPHER, "video_id": entry.uploaded_video_id})
    return videos


def build_payload(fields, week_number, videos):
    return {
        "name": fields["name"].strip(),
        "grade": fields["grade"].strip(),
        "week": week_number,
        "videos": videos,
        "description": (fields.get("description") or "").strip() or None,
        "payment_state": fields["payment_state"],
    }
