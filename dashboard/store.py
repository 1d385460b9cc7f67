# store.py

import re
import threading
import time

from .videos import VideoEntry

ENTRY_ERROR_KEY = re.compile(r"^video_(\d+)_(.+)$")


class ErrorBoard:
    """
    Error messages keyed by field ("name", "general", "video_0_youtube_url" ...).

    The whole board clears itself `display_seconds` after the last error
    was recorded. Editing a field discards its key straight away.
    """

    def __init__(self, display_seconds=6, clock=time.monotonic):
        self.display_seconds = display_seconds
        self.clock = clock
        self._errors = {}
        self._deadline = None

    def _expire(self):
        if self._deadline is not None and self.clock() >= self._deadline:
            self._errors = {}
            self._deadline = None

    def record(self, errors):
        self._expire()
        self._errors.update({key: message for key, message in errors.items() if message})
        if self._errors:
            self._deadline = self.clock() + self.display_seconds

    def replace(self, errors):
        self._errors = {}
        self._deadline = None
        self.record(errors)

    def discard(self, *keys):
        for key in keys:
            self._errors.pop(key, None)

    def discard_entry(self, index):
        prefix = f"video_{index}_"
        for key in [k for k in self._errors if k.startswith(prefix)]:
            del self._errors[key]

    def shift_after(self, index):
        """Renumber entry errors after the entry at `index` was removed."""
        shifted = {}
        for key, message in self._errors.items():
            match = ENTRY_ERROR_KEY.match(key)
            if match and int(match.group(1)) > index:
                key = f"video_{int(match.group(1)) - 1}_{match.group(2)}"
            shifted[key] = message
        self._errors = shifted

    def snapshot(self):
        self._expire()
        return dict(self._errors)

    def __bool__(self):
        return bool(self.snapshot())


class EditorStore:
    """
    Entries plus the per-entry maps (progress, uploaded flag, preview,
    active upload, progress ticker) of one editor.

    Per-entry maps are keyed by VideoEntry.key, never by list position, so
    concurrent uploads on different entries only ever touch their own key.
    Every access goes through `lock`.
    """

    def __init__(self, entries=None, fields=None, error_display_seconds=6, clock=time.monotonic):
        self.lock = threading.RLock()
        self.entries = list(entries or [VideoEntry()])
        self.fields = {
            "name": "",
            "grade": "",
            "week": "",
            "description": "",
            "payment_state": "paid",
        }
        self.fields.update(fields or {})
        self.errors = ErrorBoard(error_display_seconds, clock=clock)

        self._progress = {}
        self._uploaded = {}
        self._previews = {}
        self._uploads = {}
        self._tickers = {}

    # Entries

    def entry_at(self, index):
        with self.lock:
            if not 0 <= index < len(self.entries):
                raise IndexError(f"No video entry at position {index}")
            return self.entries[index]

    def index_of(self, key):
        with self.lock:
            for index, entry in enumerate(self.entries):
                if entry.key == key:
                    return index
            return None

    def has_entry(self, key):
        return self.index_of(key) is not None

    # Upload progress

    def get_progress(self, key):
        with self.lock:
            return self._progress.get(key)

    def set_progress(self, key, value):
        with self.lock:
            self._progress[key] = max(0, min(100, int(value)))

    def clear_progress(self, key):
        with self.lock:
            self._progress.pop(key, None)

    def is_uploading(self, key):
        """True while an upload for `key` has not been acknowledged yet."""
        with self.lock:
            return key in self._uploads

    # Uploaded flag

    def is_uploaded(self, key):
        with self.lock:
            return self._uploaded.get(key, False)

    def set_uploaded(self, key):
        with self.lock:
            self._uploaded[key] = True

    def clear_uploaded(self, key):
        with self.lock:
            self._uploaded.pop(key, None)

    # Previews

    def get_preview(self, key):
        with self.lock:
            return self._previews.get(key)

    def set_preview(self, key, data_url):
        with self.lock:
            self._previews[key] = data_url

    def clear_preview(self, key):
        with self.lock:
            self._previews.pop(key, None)

    # Active uploads

    def begin_upload(self, key):
        with self.lock:
            token = object()
            self._uploads[key] = token
            return token

    def is_current_upload(self, key, token):
        with self.lock:
            return self._uploads.get(key) is token and self.has_entry(key)

    def end_upload(self, key, token):
        with self.lock:
            if self._uploads.get(key) is token:
                del self._uploads[key]

    def attach_ticker(self, key, ticker):
        with self.lock:
            self.cancel_ticker(key)
            self._tickers[key] = ticker

    def cancel_ticker(self, key):
        with self.lock:
            ticker = self._tickers.pop(key, None)
        if ticker is not None:
            ticker.cancel()

    def drop_upload(self, key):
        """Forget any upload state of `key`; a running upload's result will be ignored."""
        with self.lock:
            self.cancel_ticker(key)
            self._uploads.pop(key, None)
            self._progress.pop(key, None)
            self._uploaded.pop(key, None)
            self._previews.pop(key, None)

    # Views

    def snapshot(self):
        with self.lock:
            return {
                "entries": [entry.to_dict() for entry in self.entries],
                "uploading": {index: self._progress[entry.key]
                              for index, entry in enumerate(self.entries) if entry.key in self._progress},
                "uploaded": {index: True
                             for index, entry in enumerate(self.entries) if self._uploaded.get(entry.key)},
                "previews": [index for index, entry in enumerate(self.entries) if entry.key in self._previews],
                "fields": dict(self.fields),
                "errors": self.errors.snapshot(),
            }
