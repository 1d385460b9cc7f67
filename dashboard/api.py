# api.py

import logging
import threading

import requests

from .errors import (BackendError, LocalValidationError, RemoteNotFound,
                     RemoteValidationFailure)

logger = logging.getLogger(__name__)

VIDEO_NOT_FOUND_MESSAGE = "❌ Video not found in VdoCipher. Please check if the video ID is correct."
VALIDATION_FAILED_MESSAGE = "❌ Failed to validate video. Please try again."


class BackendClient:
    """Thin wrapper around the session, video host and upload endpoints."""

    def __init__(self, base_url, api_key=None, timeout=30, upload_timeout=600, http=None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.http = http or requests.Session()
        if api_key:
            self.http.headers.update({"x-api-key": api_key})

        self._sessions_cache = None
        self._cache_lock = threading.Lock()

    def _request(self, method, path, json=None, timeout=None):
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, json=json, timeout=timeout or self.timeout)
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise BackendError(f"Could not reach backend: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            payload = data if isinstance(data, dict) else {}
            message = payload.get("error") or f"Backend returned HTTP {response.status_code}"
            logger.error("%s %s returned %s: %s", method, path, response.status_code, message)
            raise BackendError(message, status=response.status_code, payload=payload)

        if data is None:
            raise BackendError(f"Backend returned an invalid response for {path}", status=response.status_code)
        return data

    # Sessions

    def list_sessions(self, refresh=False):
        """Return the backend session list, cached until invalidate_sessions() is called."""
        with self._cache_lock:
            if self._sessions_cache is not None and not refresh:
                return self._sessions_cache

        data = self._request("GET", "/sessions")
        sessions = data.get("sessions", []) if isinstance(data, dict) else data

        with self._cache_lock:
            self._sessions_cache = list(sessions or [])
            return self._sessions_cache

    def invalidate_sessions(self):
        with self._cache_lock:
            self._sessions_cache = None

    def get_session(self, session_id):
        for session in self.list_sessions():
            if str(session.get("_id")) == str(session_id):
                return session
        return None

    def update_session(self, session_id, payload):
        return self._request("PUT", f"/sessions/{session_id}", json=payload)

    # Video host

    def validate_hosted_video_id(self, video_id):
        """
        Confirm a VdoCipher video ID exists.

        Returns nothing on success. Raises LocalValidationError for a blank
        ID (no request is made), RemoteNotFound when the host says the video
        does not exist and RemoteValidationFailure for anything else.
        """
        video_id = (video_id or "").strip()
        if not video_id:
            raise LocalValidationError("❌ Video ID is required")

        try:
            data = self._request("POST", "/video-host/validate", json={"video_id": video_id})
        except BackendError as e:
            if e.status == 404 or e.payload.get("video_not_found"):
                raise RemoteNotFound(VIDEO_NOT_FOUND_MESSAGE) from e
            raise RemoteValidationFailure(e.server_error or VALIDATION_FAILED_MESSAGE) from e

        if isinstance(data, dict) and data.get("success"):
            return
        if isinstance(data, dict) and data.get("video_not_found"):
            raise RemoteNotFound(VIDEO_NOT_FOUND_MESSAGE)
        error = data.get("error") if isinstance(data, dict) else None
        raise RemoteValidationFailure(error or "❌ Video validation failed")

    # Uploads

    def upload_video(self, encoded_file, filename, file_type):
        return self._request(
            "POST",
            "/uploads/video",
            json={"file": encoded_file, "filename": filename, "fileType": file_type},
            timeout=self.upload_timeout,
        )
