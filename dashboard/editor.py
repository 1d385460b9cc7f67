"""The online session editor: video entries, uploads and submission."""
import logging
import time

from .errors import BackendError, LocalValidationError, VideoWorkflowError
from .store import EditorStore
from .submission import (assemble_videos, build_payload, check_entries_locally,
                         check_duplicate, check_fields, check_hosted_ids)
from .uploads import UploadPipeline
from .videos import (HOSTED_MODES, MODE_UPLOAD, MODE_VIDEO_ID, SOURCE_VDOCIPHER,
                     SOURCE_YOUTUBE, SOURCES, VideoEntry, entries_from_session,
                     extract_week_number, fields_from_session)

logger = logging.getLogger(__name__)

FORM_FIELDS = ("name", "grade", "week", "description", "payment_state")


class SessionEditor:
    """
    Edits one backend session.

    All state lives in `store`; uploads run through `pipeline` on
    background threads and write back into the same store.
    """

    def __init__(self, session_id, client, store=None, pipeline=None, **pipeline_options):
        self.session_id = session_id
        self.client = client
        self.store = store or EditorStore()
        self.pipeline = pipeline or UploadPipeline(self.store, client, **pipeline_options)
        self.last_access = time.monotonic()

    @classmethod
    def open(cls, session_id, client, error_display_seconds=6, **pipeline_options):
        """Load session `session_id` from the backend. Returns None if it does not exist."""
        session = client.get_session(session_id)
        if session is None:
            return None
        store = EditorStore(
            entries=entries_from_session(session),
            fields=fields_from_session(session),
            error_display_seconds=error_display_seconds,
        )
        return cls(session_id, client, store=store, **pipeline_options)

    # Entry list

    def add_entry(self):
        with self.store.lock:
            self.store.entries.append(VideoEntry())
            return len(self.store.entries) - 1

    def remove_entry(self, index):
        store = self.store
        with store.lock:
            entry = store.entry_at(index)
            if len(store.entries) == 1:
                raise LocalValidationError("❌ At least one video is required")
            store.drop_upload(entry.key)
            del store.entries[index]
            store.errors.discard_entry(index)
            store.errors.shift_after(index)

    def set_source(self, index, source):
        if source not in SOURCES:
            raise LocalValidationError(f"❌ Unknown video source: {source}")
        store = self.store
        with store.lock:
            entry = store.entry_at(index)
            entry.source = source
            if source != SOURCE_YOUTUBE:
                entry.youtube_url = ""
            if source != SOURCE_VDOCIPHER:
                entry.hosted_mode = MODE_VIDEO_ID
                entry.hosted_video_id = ""
                entry.pending_file = None
                entry.uploaded_video_id = None
                store.drop_upload(entry.key)
            store.errors.discard_entry(index)

    def set_hosted_mode(self, index, mode):
        if mode not in HOSTED_MODES:
            raise LocalValidationError(f"❌ Unknown VdoCipher option: {mode}")
        store = self.store
        with store.lock:
            entry = store.entry_at(index)
            entry.hosted_mode = mode
            if mode != MODE_VIDEO_ID:
                entry.hosted_video_id = ""
            if mode != MODE_UPLOAD:
                entry.pending_file = None
                entry.uploaded_video_id = None
                store.drop_upload(entry.key)
            store.errors.discard(f"video_{index}_hosted_video_id", f"video_{index}_hosted_file")

    def set_youtube_url(self, index, url):
        with self.store.lock:
            self.store.entry_at(index).youtube_url = url or ""
            self.store.errors.discard(f"video_{index}_youtube_url")

    def set_hosted_video_id(self, index, video_id):
        with self.store.lock:
            self.store.entry_at(index).hosted_video_id = video_id or ""
            self.store.errors.discard(f"video_{index}_hosted_video_id")

    def set_fields(self, **fields):
        with self.store.lock:
            for name, value in fields.items():
                if name not in FORM_FIELDS:
                    continue
                self.store.fields[name] = "" if value is None else str(value)
                self.store.errors.discard(name)
            self.store.errors.discard("general")

    # Files

    def select_file(self, index, video_file):
        """Validate the file and start uploading it in the background."""
        return self.pipeline.start(index, video_file)

    def clear_file(self, index):
        self.pipeline.clear(index)

    # Submission

    def submit(self):
        """
        Validate everything and send the session to the backend.

        Returns True when the backend accepted the update. On False, the
        reasons are in store.errors.
        """
        store = self.store
        with store.lock:
            fields = dict(store.fields)

        errors = check_fields(fields)
        local_errors, remote = check_entries_locally(store)
        errors.update(local_errors)
        errors.update(check_hosted_ids(self.client, remote))

        if errors:
            return self._reject(errors)

        week_number = extract_week_number(fields["week"])
        if not week_number:
            return self._reject({"week": "❌ Invalid week selection"})

        grade = fields["grade"].strip()
        try:
            sessions = self.client.list_sessions()
        except BackendError as e:
            return self._reject({"general": _with_marker(e.server_error or "Failed to load sessions")})

        try:
            check_duplicate(sessions, self.session_id, grade, week_number)
            videos = assemble_videos(store)
        except VideoWorkflowError as e:
            logger.info("Session %s not submitted: %s", self.session_id, e.message)
            return self._reject({e.field or "general": e.message})

        payload = build_payload(fields, week_number, videos)
        try:
            self.client.update_session(self.session_id, payload)
        except BackendError as e:
            return self._reject({"general": _with_marker(e.server_error or "Failed to update session")})

        self.client.invalidate_sessions()
        logger.info("Session %s updated with %d video(s)", self.session_id, len(videos))
        return True

    def _reject(self, errors):
        with self.store.lock:
            self.store.errors.replace(errors)
        return False

    def state(self):
        return self.store.snapshot()

    def touch(self):
        self.last_access = time.monotonic()

    def idle_for(self, now=None):
        return (time.monotonic() if now is None else now) - self.last_access

    def close(self):
        """Stop progress tickers; in-flight uploads finish but their results are ignored."""
        with self.store.lock:
            for entry in self.store.entries:
                self.store.drop_upload(entry.key)


def _with_marker(message):
    return message if message.startswith("❌") else f"❌ {message}"
