from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone

from poster_studio.canvas.editor import MaskEditor
from poster_studio.config import settings
from poster_studio.dataurl import ImageSource, image_to_data_url, open_image
from poster_studio.errors import SessionNotFound

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class MaskSession:
    session_id: str
    editor: MaskEditor
    # The image currently shown under the mask, as a data URL.
    source_image: str
    container_size: tuple[float, float]
    created_at: str
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def reload(self, source_image: str) -> None:
        """Swap the displayed image; the editor drops its mask and history."""
        w, h = self.container_size
        self.editor.load_image(source_image, w, h)
        self.source_image = source_image


class MaskSessionStore:
    """
    In-memory registry of live mask editors, least recently used evicted first.

    Each session carries its own lock; callers hold it around editor calls so
    concurrent requests against one session run one at a time.
    """

    def __init__(self, max_sessions: int | None = None) -> None:
        self.max_sessions = max_sessions or settings.max_sessions
        self._sessions: OrderedDict[str, MaskSession] = OrderedDict()
        self._lock = threading.Lock()

    def create_session(
        self,
        source: ImageSource,
        container_w: float,
        container_h: float,
        brush_size: float | None = None,
    ) -> MaskSession:
        source_url = source if isinstance(source, str) else image_to_data_url(open_image(source))
        editor = MaskEditor(brush_size=brush_size)
        editor.load_image(source_url, container_w, container_h)

        session = MaskSession(
            session_id=uuid.uuid4().hex[:12],
            editor=editor,
            source_image=source_url,
            container_size=(float(container_w), float(container_h)),
            created_at=_now_iso(),
        )
        with self._lock:
            self._sessions[session.session_id] = session
            while len(self._sessions) > self.max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info("evicted mask session %s", evicted_id)
        return session

    def get(self, session_id: str) -> MaskSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            self._sessions.move_to_end(session_id)
            return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFound(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions
