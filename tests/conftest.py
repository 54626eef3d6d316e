from __future__ import annotations

import pytest

from poster_studio.canvas.editor import MaskEditor
from tests.helpers import solid_png


@pytest.fixture
def source_png() -> bytes:
    return solid_png((200, 100))


@pytest.fixture
def editor(source_png: bytes) -> MaskEditor:
    ed = MaskEditor(brush_size=10)
    # 2:1 image in a square container -> 400x200 canvas
    ed.load_image(source_png, 400, 400)
    return ed
