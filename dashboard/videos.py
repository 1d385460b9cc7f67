"""Video entries attached to an online session, and the helpers that parse them."""
from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field
from typing import Optional

SOURCE_YOUTUBE = "youtube"
SOURCE_VDOCIPHER = "vdocipher"
SOURCES = (SOURCE_YOUTUBE, SOURCE_VDOCIPHER)

MODE_VIDEO_ID = "video_id"
MODE_UPLOAD = "upload"
HOSTED_MODES = (MODE_VIDEO_ID, MODE_UPLOAD)

YOUTUBE_ID_PATTERN = re.compile(r"(?:youtu\.be/|youtube\.com/(?:watch\?v=|embed/))([a-zA-Z0-9_-]{11})")
WEEK_PATTERN = re.compile(r"week\s*(\d+)", re.IGNORECASE)

_entry_keys = itertools.count(1)


@dataclass
class VideoFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class VideoEntry:
    source: str = SOURCE_YOUTUBE
    youtube_url: str = ""
    hosted_mode: str = MODE_VIDEO_ID
    hosted_video_id: str = ""
    pending_file: Optional[VideoFile] = None
    uploaded_video_id: Optional[str] = None
    key: int = field(default_factory=lambda: next(_entry_keys))

    @property
    def is_youtube(self) -> bool:
        return self.source == SOURCE_YOUTUBE

    @property
    def is_hosted_by_id(self) -> bool:
        return self.source == SOURCE_VDOCIPHER and self.hosted_mode == MODE_VIDEO_ID

    @property
    def is_hosted_upload(self) -> bool:
        return self.source == SOURCE_VDOCIPHER and self.hosted_mode == MODE_UPLOAD

    def to_dict(self):
        return {
            "video_source": self.source,
            "youtube_url": self.youtube_url,
            "vdocipher_option": self.hosted_mode,
            "vdocipher_video_id": self.hosted_video_id,
            "file_name": self.pending_file.filename if self.pending_file else None,
            "vdocipher_uploaded_video_id": self.uploaded_video_id,
        }


def extract_youtube_id(url):
    """Return the 11 character video ID of a YouTube URL, or None."""
    if not url:
        return None
    match = YOUTUBE_ID_PATTERN.search(url)
    return match.group(1) if match else None


def extract_week_number(week_string):
    """'week 03' -> 3. Returns None for anything without a week number."""
    if not week_string:
        return None
    match = WEEK_PATTERN.search(str(week_string))
    return int(match.group(1)) if match else None


def week_number_to_string(week_number):
    """3 -> 'week 03'."""
    if week_number is None:
        return ""
    return f"week {int(week_number):02d}"


def entries_from_session(session):
    """
    Build editor entries from a backend session record.

    Sessions store their videos flat, as video_ID_1 / video_type_1,
    video_ID_2 / video_type_2 ... until the first missing ID. Unknown
    video types are skipped. Always returns at least one entry.
    """
    entries = []
    index = 1
    while session.get(f"video_ID_{index}"):
        video_id = session[f"video_ID_{index}"]
        video_type = session.get(f"video_type_{index}") or SOURCE_YOUTUBE

        if video_type == SOURCE_YOUTUBE:
            entries.append(VideoEntry(youtube_url=f"https://www.youtube.com/watch?v={video_id}"))
        elif video_type == SOURCE_VDOCIPHER:
            entries.append(VideoEntry(source=SOURCE_VDOCIPHER, hosted_video_id=video_id))
        index += 1

    return entries or [VideoEntry()]


def fields_from_session(session):
    """Form fields (name, grade, week, description, payment state) of a backend session."""
    return {
        "name": session.get("name") or "",
        "grade": session.get("grade") or "",
        "week": week_number_to_string(session["week"]) if session.get("week") else "",
        "description": session.get("description") or "",
        "payment_state": session.get("payment_state") or "paid",
    }
