"""Video upload to VdoCipher through the backend, with client-side progress estimation."""
import base64
import logging
import math
import threading
import time

from .errors import BackendError, LocalValidationError, UploadFailure

logger = logging.getLogger(__name__)

MAX_VIDEO_SIZE_MB = 500
ENCODE_SHARE = 20      # encoding reports 0-20%
TRANSFER_CAP = 98      # simulated transfer never passes this
TICK_SECONDS = 0.15
CLEAR_DELAY_SECONDS = 0.5
ENCODE_CHUNK_SIZE = 3 * 256 * 1024  # multiple of 3 so base64 chunks concatenate cleanly

UPLOAD_FAILED_MESSAGE = "❌ Failed to upload video. Please try again."


def estimated_upload_seconds(size_bytes):
    """1.5 seconds per MB, never less than 3 seconds."""
    size_mb = size_bytes / (1024 * 1024)
    return max(3, math.ceil(size_mb * 1.5))


def simulated_progress(elapsed, estimated):
    """
    Eased transfer progress for `elapsed` seconds into an upload expected to
    take `estimated` seconds. Runs from 20 to 98 and stays at 98.
    """
    ratio = min(elapsed / estimated, 1) if estimated > 0 else 1
    eased = 1 - (1 - ratio) ** 2
    return min(math.floor(ENCODE_SHARE + eased * 78 + 0.5), TRANSFER_CAP)


def check_video_file(video_file, max_size_mb=MAX_VIDEO_SIZE_MB):
    if not (video_file.content_type or "").startswith("video/"):
        raise LocalValidationError("❌ Please select a video file")
    if video_file.size > max_size_mb * 1024 * 1024:
        raise LocalValidationError(f"❌ Video file size must be less than {max_size_mb} MB")


def encode_data_url(video_file, on_progress=None, chunk_size=ENCODE_CHUNK_SIZE):
    """
    Encode a video file as a base64 data URL.

    `on_progress` receives 0-20 as chunks are encoded and 20 once done.
    """
    data = video_file.data
    total = len(data)
    parts = []
    for start in range(0, total, chunk_size):
        chunk = data[start:start + chunk_size]
        parts.append(base64.b64encode(chunk).decode("ascii"))
        if on_progress:
            on_progress(min(round((start + len(chunk)) / total * ENCODE_SHARE), ENCODE_SHARE))

    if on_progress:
        on_progress(ENCODE_SHARE)
    return f"data:{video_file.content_type};base64," + "".join(parts)


def run_later(delay, callback):
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class ProgressTicker:
    """Calls `callback` every `interval` seconds on a daemon thread until cancelled."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self):
        self._thread.start()
        return self

    def _run(self):
        while not self._stopped.wait(self.interval):
            self.callback()

    def cancel(self):
        self._stopped.set()

    @property
    def cancelled(self):
        return self._stopped.is_set()


class UploadPipeline:
    """
    Runs uploads for the entries of one EditorStore.

    select() validates the file and registers the upload, run() does the
    work and is meant for a background thread; start() does both. Results
    of an upload whose entry was removed, or whose file was cleared, are
    dropped.
    """

    def __init__(self, store, client, max_size_mb=MAX_VIDEO_SIZE_MB, tick_seconds=TICK_SECONDS,
                 clear_delay=CLEAR_DELAY_SECONDS, sleep=time.sleep, schedule=run_later,
                 clock=time.monotonic, ticker_factory=ProgressTicker):
        self.store = store
        self.client = client
        self.max_size_mb = max_size_mb
        self.tick_seconds = tick_seconds
        self.clear_delay = clear_delay
        self.sleep = sleep
        self.schedule = schedule
        self.clock = clock
        self.ticker_factory = ticker_factory

    def select(self, index, video_file):
        """Validate `video_file` for the entry at `index` and register its upload. Returns (key, token)."""
        store = self.store
        field = f"video_{index}_hosted_file"
        with store.lock:
            entry = store.entry_at(index)
            if not entry.is_hosted_upload:
                raise LocalValidationError("❌ Switch this video to VdoCipher upload first", field=field)
            if store.is_uploading(entry.key):
                raise LocalValidationError("❌ Please wait for video upload to complete", field=field)

            try:
                check_video_file(video_file, self.max_size_mb)
            except LocalValidationError as e:
                e.field = field
                store.errors.record({field: e.message})
                raise

            entry.pending_file = video_file
            entry.uploaded_video_id = None
            store.clear_uploaded(entry.key)
            store.clear_preview(entry.key)
            store.errors.discard(field)

            token = store.begin_upload(entry.key)
            store.set_progress(entry.key, 0)
            return entry.key, token

    def start(self, index, video_file):
        key, token = self.select(index, video_file)
        worker = threading.Thread(target=self.run, args=(key, token, video_file), daemon=True)
        worker.start()
        return worker

    def _publish(self, key, token, value):
        with self.store.lock:
            if not self.store.is_current_upload(key, token):
                return
            if value > (self.store.get_progress(key) or 0):
                self.store.set_progress(key, value)

    def run(self, key, token, video_file):
        store = self.store
        logger.info("Uploading %s (%.1f MB)", video_file.filename, video_file.size / (1024 * 1024))

        ticker = None
        try:
            encoded = encode_data_url(video_file, on_progress=lambda value: self._publish(key, token, value))
            with store.lock:
                if store.is_current_upload(key, token):
                    store.set_preview(key, encoded)

            estimated = estimated_upload_seconds(video_file.size)
            started = self.clock()
            self._publish(key, token, ENCODE_SHARE)

            ticker = self.ticker_factory(
                self.tick_seconds,
                lambda: self._publish(key, token, simulated_progress(self.clock() - started, estimated)),
            )
            with store.lock:
                if not store.is_current_upload(key, token):
                    return
                store.attach_ticker(key, ticker)
            ticker.start()

            response = self.client.upload_video(encoded, video_file.filename, video_file.content_type)
            ticker.cancel()

            if not (isinstance(response, dict) and response.get("success") and response.get("video_id")):
                error = response.get("error") if isinstance(response, dict) else None
                raise UploadFailure(error or UPLOAD_FAILED_MESSAGE)

            if not store.is_current_upload(key, token):
                logger.info("Discarding upload result of %s, entry changed", video_file.filename)
                return

            if (store.get_progress(key) or 0) < TRANSFER_CAP:
                self._publish(key, token, TRANSFER_CAP)
                self.sleep(0.2)
            self._publish(key, token, 99)
            self.sleep(0.15)
            self._publish(key, token, 100)

            with store.lock:
                if not store.is_current_upload(key, token):
                    return
                entry = store.entries[store.index_of(key)]
                entry.uploaded_video_id = response["video_id"]
                entry.pending_file = None
                store.cancel_ticker(key)
                store.set_uploaded(key)
                store.end_upload(key, token)
            logger.info("Uploaded %s as VdoCipher video %s", video_file.filename, response["video_id"])

            self.schedule(self.clear_delay, lambda: self._clear_finished(key))

        except Exception as e:
            if ticker is not None:
                ticker.cancel()
            self._fail(key, token, video_file, e)

    def _clear_finished(self, key):
        with self.store.lock:
            if not self.store.is_uploading(key):
                self.store.clear_progress(key)

    def _fail(self, key, token, video_file, error):
        if isinstance(error, BackendError):
            message = error.server_error or UPLOAD_FAILED_MESSAGE
        elif isinstance(error, UploadFailure):
            message = error.message
        else:
            message = UPLOAD_FAILED_MESSAGE
        logger.error("Upload of %s failed: %s", video_file.filename, error)

        store = self.store
        with store.lock:
            if not store.is_current_upload(key, token):
                return
            index = store.index_of(key)
            entry = store.entries[index]
            entry.pending_file = None
            entry.uploaded_video_id = None
            store.cancel_ticker(key)
            store.clear_progress(key)
            store.clear_uploaded(key)
            store.clear_preview(key)
            store.end_upload(key, token)
            store.errors.record({f"video_{index}_hosted_file": message, "general": message})

    def clear(self, index):
        """Drop the selected file of the entry at `index`, together with any upload state."""
        with self.store.lock:
            entry = self.store.entry_at(index)
            entry.pending_file = None
            entry.uploaded_video_id = None
            self.store.drop_upload(entry.key)
