import pytest

from dashboard import create_app
from dashboard.api import VIDEO_NOT_FOUND_MESSAGE
from dashboard.errors import BackendError, RemoteNotFound
from dashboard.store import EditorStore
from dashboard.uploads import UploadPipeline


class FakeBackend:
    """Stands in for BackendClient and records every call that would hit the network."""

    def __init__(self, sessions=None, valid_ids=()):
        self.sessions = sessions if sessions is not None else []
        self.valid_ids = set(valid_ids)
        self.calls = []
        self.updates = []
        self.upload_response = {"success": True, "video_id": "vdo-uploaded"}
        self.upload_error = None
        self.update_error = None
        self.on_upload = None

    def list_sessions(self, refresh=False):
        self.calls.append(("list_sessions",))
        return self.sessions

    def get_session(self, session_id):
        for session in self.sessions:
            if str(session.get("_id")) == str(session_id):
                return session
        return None

    def invalidate_sessions(self):
        self.calls.append(("invalidate_sessions",))

    def update_session(self, session_id, payload):
        self.calls.append(("update_session", session_id))
        if self.update_error:
            raise self.update_error
        self.updates.append(payload)
        return {"success": True}

    def validate_hosted_video_id(self, video_id):
        self.calls.append(("validate", video_id))
        if video_id not in self.valid_ids:
            raise RemoteNotFound(VIDEO_NOT_FOUND_MESSAGE)

    def upload_video(self, encoded_file, filename, file_type):
        self.calls.append(("upload", filename))
        if self.on_upload:
            self.on_upload()
        if self.upload_error:
            raise self.upload_error
        return self.upload_response


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class ManualTicker:
    """Ticker that only fires when the test calls tick()."""

    instances = []

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        ManualTicker.instances.append(self)

    def start(self):
        self.started = True
        return self

    def tick(self):
        if not self.cancelled:
            self.callback()

    def cancel(self):
        self.cancelled = True


class RecordingStore(EditorStore):
    """EditorStore that remembers every progress value written."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.progress_history = {}

    def set_progress(self, key, value):
        self.progress_history.setdefault(key, []).append(value)
        super().set_progress(key, value)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return RecordingStore(clock=clock)


@pytest.fixture
def pipeline(store, backend, clock):
    ManualTicker.instances = []
    return UploadPipeline(
        store,
        backend,
        sleep=lambda seconds: None,
        schedule=lambda delay, callback: callback(),
        clock=clock,
        ticker_factory=ManualTicker,
    )


@pytest.fixture
def server_error():
    return BackendError("boom", status=500, payload={"error": "❌ VdoCipher quota exceeded"})


@pytest.fixture
def app():
    fake = FakeBackend(sessions=[
        {
            "_id": "s1",
            "name": "Algebra revision",
            "grade": "g1",
            "week": 2,
            "payment_state": "free",
            "video_ID_1": "dQw4w9WgXcQ",
            "video_type_1": "youtube",
        },
        {"_id": "s2", "name": "Geometry", "grade": "g1", "week": 3},
    ], valid_ids={"vdo-123"})
    app = create_app({
        "TESTING": True,
        "BACKEND_CLIENT": fake,
        "PROGRESS_TICK_SECONDS": 0.01,
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()
