import io
import time

BASE = "/dashboard/manage_online_system/online_sessions"


def open_editor(client, session_id="s1"):
    response = client.post(f"{BASE}/{session_id}/editor")
    assert response.status_code == 201
    return response.get_json()["editor_id"]


def wait_for(client, editor_id, predicate, timeout=5):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        state = client.get(f"{BASE}/editor/{editor_id}").get_json()["state"]
        if predicate(state):
            return state
        time.sleep(0.05)
    raise AssertionError("editor never reached the expected state")


def test_list_sessions(client):
    response = client.get(f"{BASE}/")
    assert response.status_code == 200
    assert [s["_id"] for s in response.get_json()["sessions"]] == ["s1", "s2"]


def test_open_editor_loads_session(client):
    response = client.post(f"{BASE}/s1/editor")
    data = response.get_json()

    assert data["success"] is True
    state = data["state"]
    assert state["fields"]["name"] == "Algebra revision"
    assert state["fields"]["week"] == "week 02"
    assert state["fields"]["payment_state"] == "free"
    assert state["entries"][0]["youtube_url"] == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def test_open_editor_for_unknown_session(client):
    assert client.post(f"{BASE}/nope/editor").status_code == 404


def test_unknown_editor(client):
    assert client.get(f"{BASE}/editor/does-not-exist").status_code == 404


def test_entry_management_routes(client):
    editor_id = open_editor(client)

    response = client.post(f"{BASE}/editor/{editor_id}/videos")
    assert response.status_code == 201
    assert response.get_json()["index"] == 1

    response = client.post(f"{BASE}/editor/{editor_id}/videos/1/source", json={"source": "vdocipher"})
    assert response.get_json()["state"]["entries"][1]["video_source"] == "vdocipher"

    response = client.post(f"{BASE}/editor/{editor_id}/videos/1/video_id", json={"video_id": "vdo-123"})
    assert response.get_json()["state"]["entries"][1]["vdocipher_video_id"] == "vdo-123"

    response = client.post(f"{BASE}/editor/{editor_id}/videos/1/source", json={"source": "vimeo"})
    assert response.status_code == 400

    response = client.delete(f"{BASE}/editor/{editor_id}/videos/0")
    assert response.status_code == 200
    assert len(response.get_json()["state"]["entries"]) == 1

    response = client.delete(f"{BASE}/editor/{editor_id}/videos/0")
    assert response.status_code == 400
    assert "At least one video" in response.get_json()["message"]

    assert client.delete(f"{BASE}/editor/{editor_id}/videos/9").status_code == 400


def test_submit_with_duplicate_week(client):
    editor_id = open_editor(client)

    response = client.post(f"{BASE}/editor/{editor_id}/submit", json={"week": "week 03"})

    assert response.status_code == 400
    assert response.get_json()["errors"] == {"general": "❌ A session with this grade and week already exists"}


def test_submit_success_closes_editor(client, app):
    editor_id = open_editor(client)
    client.post(f"{BASE}/editor/{editor_id}/fields", json={"description": "Chapter 4"})

    response = client.post(f"{BASE}/editor/{editor_id}/submit")

    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is True
    assert data["redirect_url"] == f"{BASE}/"

    backend = app.extensions["backend_client"]
    assert backend.updates[-1]["description"] == "Chapter 4"
    assert backend.updates[-1]["week"] == 2
    assert client.get(f"{BASE}/editor/{editor_id}").status_code == 404


def test_file_upload_runs_in_background(client, app):
    editor_id = open_editor(client)
    client.post(f"{BASE}/editor/{editor_id}/videos/0/source", json={"source": "vdocipher"})
    client.post(f"{BASE}/editor/{editor_id}/videos/0/mode", json={"mode": "upload"})

    response = client.post(
        f"{BASE}/editor/{editor_id}/videos/0/file",
        data={"file": (io.BytesIO(b"\x00" * 2048), "lecture.mp4", "video/mp4")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 202

    state = wait_for(client, editor_id, lambda s: s["entries"][0]["vdocipher_uploaded_video_id"])
    assert state["entries"][0]["vdocipher_uploaded_video_id"] == "vdo-uploaded"
    assert state["uploaded"] == {"0": True}

    preview = client.get(f"{BASE}/editor/{editor_id}/videos/0/preview").get_json()
    assert preview["preview"].startswith("data:video/mp4;base64,")

    response = client.post(f"{BASE}/editor/{editor_id}/submit")
    assert response.status_code == 200
    backend = app.extensions["backend_client"]
    assert backend.updates[-1]["videos"] == [{"video_type": "vdocipher", "video_id": "vdo-uploaded"}]


def test_non_video_file_is_rejected(client, app):
    editor_id = open_editor(client)
    client.post(f"{BASE}/editor/{editor_id}/videos/0/source", json={"source": "vdocipher"})
    client.post(f"{BASE}/editor/{editor_id}/videos/0/mode", json={"mode": "upload"})

    response = client.post(
        f"{BASE}/editor/{editor_id}/videos/0/file",
        data={"file": (io.BytesIO(b"%PDF-1.4"), "notes.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 400
    assert response.get_json()["state"]["errors"]["video_0_hosted_file"] == "❌ Please select a video file"
    assert ("upload", "notes.pdf") not in app.extensions["backend_client"].calls


def test_missing_file(client):
    editor_id = open_editor(client)
    response = client.post(f"{BASE}/editor/{editor_id}/videos/0/file", data={}, content_type="multipart/form-data")
    assert response.status_code == 400


def test_close_editor(client):
    editor_id = open_editor(client)
    assert client.delete(f"{BASE}/editor/{editor_id}").status_code == 200
    assert client.delete(f"{BASE}/editor/{editor_id}").status_code == 404


def test_idle_editors_are_closed_when_another_is_opened(client, app):
    stale_id = open_editor(client)
    stale = app.extensions["session_editors"][stale_id]
    stale.store.begin_upload(stale.store.entries[0].key)

    app.config["EDITOR_IDLE_SECONDS"] = 0
    fresh_id = open_editor(client)

    assert stale_id not in app.extensions["session_editors"]
    assert fresh_id in app.extensions["session_editors"]
    assert not stale.store.is_uploading(stale.store.entries[0].key)
    assert client.get(f"{BASE}/editor/{stale_id}").status_code == 404


def test_editors_in_use_are_kept(client, app):
    editor_ids = [open_editor(client) for _ in range(3)]
    assert set(app.extensions["session_editors"]) == set(editor_ids)


def test_non_object_json_bodies_are_ignored(client):
    editor_id = open_editor(client)

    response = client.post(f"{BASE}/editor/{editor_id}/fields", json=["name", "x"])
    assert response.status_code == 200

    response = client.post(f"{BASE}/editor/{editor_id}/videos/0/source", json=["vdocipher"])
    assert response.status_code == 400

    response = client.post(f"{BASE}/editor/{editor_id}/submit", json=[1, 2, 3])
    assert response.status_code == 200
    assert response.get_json()["success"] is True
