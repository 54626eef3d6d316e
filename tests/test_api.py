import pytest
from fastapi.testclient import TestClient

from poster_studio.api import app as app_module
from poster_studio.dataurl import to_data_url
from poster_studio.providers.base import GeneratedImage
from tests.helpers import broken_png, decode, half_transparent_png, solid_png


class FakeProvider:
    name = "fake"

    def __init__(self, result_png: bytes | None = None) -> None:
        self.result_png = result_png if result_png is not None else solid_png((120, 60), (0, 128, 0, 255))
        self.edit_calls = []
        self.generate_calls = []

    def _image(self, prompt: str) -> GeneratedImage:
        return GeneratedImage(
            data_url=to_data_url(self.result_png, "image/png"),
            prompt_used=prompt,
            provider=self.name,
            model="fake-model",
            raw_metadata={},
        )

    async def generate(self, images, prompt, aspect_ratio, n):
        self.generate_calls.append((images, prompt, aspect_ratio, n))
        return [self._image(prompt) for _ in range(n)]

    async def edit(self, image, mask, prompt):
        self.edit_calls.append((image, mask, prompt))
        return self._image(prompt)


@pytest.fixture
def provider(monkeypatch):
    fake = FakeProvider()
    monkeypatch.setattr(app_module, "_get_provider", lambda: fake)
    return fake


@pytest.fixture
def client():
    return TestClient(app_module.app)


def _create_session(client, png=None, **extra):
    data = {"container_width": "400", "container_height": "400", "brush_size": "10", **extra}
    files = {"image": ("poster.png", png or solid_png((200, 100)), "image/png")}
    resp = client.post("/mask-sessions", data=data, files=files)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _pointer(client, sid, event, x=0.0, y=0.0):
    return client.post(f"/mask-sessions/{sid}/pointer", json={"event": event, "x": x, "y": y})


# Exports


def test_export_jpeg_download(client):
    files = {"image": ("poster.png", half_transparent_png((1000, 800)), "image/png")}
    resp = client.post("/exports", data={"format": "jpeg", "scale": "0.5", "filename": "summer"}, files=files)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"
    assert resp.headers["content-disposition"] == 'attachment; filename="summer.jpeg"'
    assert resp.headers["x-watermark-applied"] == "false"
    img = decode(resp.content)
    assert img.size == (500, 400)
    assert all(c >= 250 for c in img.getpixel((10, 200)))


def test_export_with_text_watermark(client):
    resp = client.post(
        "/exports",
        data={
            "image_data_url": to_data_url(solid_png((300, 200)), "image/png"),
            "watermark_type": "text",
            "watermark_text": "Sample",
            "watermark_position": "top-left",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["x-watermark-applied"] == "true"


def test_export_with_broken_logo_still_downloads(client):
    files = {
        "image": ("poster.png", solid_png((300, 200)), "image/png"),
        "watermark_logo": ("logo.png", b"not an image", "image/png"),
    }
    resp = client.post("/exports", data={"watermark_type": "logo"}, files=files)
    assert resp.status_code == 200
    assert resp.headers["x-watermark-applied"] == "false"


def test_export_blank_text_watermark_is_dropped(client):
    files = {"image": ("poster.png", solid_png((300, 200)), "image/png")}
    resp = client.post("/exports", data={"watermark_type": "text", "watermark_text": "  "}, files=files)
    assert resp.status_code == 200
    assert resp.headers["x-watermark-applied"] == "false"


@pytest.mark.parametrize(
    "data",
    [
        {"scale": "0.3"},
        {"format": "gif"},
        {"watermark_type": "text", "watermark_text": "x", "watermark_opacity": "0.05"},
        {"watermark_type": "stamp"},
        {"watermark_type": "text", "watermark_text": "x", "watermark_position": "nowhere"},
    ],
)
def test_export_rejects_bad_options(client, data):
    files = {"image": ("poster.png", solid_png((30, 20)), "image/png")}
    assert client.post("/exports", data=data, files=files).status_code == 400


def test_export_requires_an_image(client):
    assert client.post("/exports", data={"format": "png"}).status_code == 400


def test_export_undecodable_source_is_400(client):
    files = {"image": ("poster.png", b"garbage", "image/png")}
    resp = client.post("/exports", files=files)
    assert resp.status_code == 400
    assert "decode" in resp.json()["detail"]


def test_export_corrupt_png_source_is_400(client):
    files = {"image": ("poster.png", broken_png(), "image/png")}
    resp = client.post("/exports", files=files)
    assert resp.status_code == 400
    assert "decode" in resp.json()["detail"]


def test_export_corrupt_png_logo_is_skipped(client):
    files = {
        "image": ("poster.png", solid_png((300, 200)), "image/png"),
        "watermark_logo": ("logo.png", broken_png(), "image/png"),
    }
    resp = client.post("/exports", data={"watermark_type": "logo"}, files=files)
    assert resp.status_code == 200
    assert resp.headers["x-watermark-applied"] == "false"


def test_export_options(client):
    body = client.get("/exports/options").json()
    assert body["formats"] == ["png", "jpeg"]
    assert body["scales"]["Medium"] == 0.25
    assert body["watermark"]["opacity"]["min"] == 0.1


# Mask sessions


def test_mask_session_draw_undo_flow(client):
    created = _create_session(client)
    sid = created["session_id"]
    assert (created["width"], created["height"]) == (400, 200)
    assert created["offset_y"] == 100
    assert not created["can_undo"]

    assert client.get(f"/mask-sessions/{sid}/mask").status_code == 204

    down = _pointer(client, sid, "down", 50, 50).json()
    assert down["changed"] and down["state"] == "drawing"
    assert _pointer(client, sid, "move", 150, 50).json()["changed"]
    up = _pointer(client, sid, "up").json()
    assert up["state"] == "idle" and up["history_depth"] == 1

    mask = client.get(f"/mask-sessions/{sid}/mask")
    assert mask.status_code == 200
    assert mask.headers["content-type"] == "image/png"
    img = decode(mask.content)
    assert img.size == (400, 200)
    assert img.getpixel((100, 50))[3] == 255

    undone = client.post(f"/mask-sessions/{sid}/undo").json()
    assert undone["undone"] and not undone["can_undo"]
    assert client.get(f"/mask-sessions/{sid}/mask").status_code == 204
    assert not client.post(f"/mask-sessions/{sid}/undo").json()["undone"]


def test_mask_session_brush_enabled_and_clear(client):
    sid = _create_session(client)["session_id"]
    assert client.post(f"/mask-sessions/{sid}/brush", json={"brush_size": 25}).json()["brush_size"] == 25
    assert client.post(f"/mask-sessions/{sid}/brush", json={"brush_size": 0}).status_code == 422

    off = client.post(f"/mask-sessions/{sid}/enabled", json={"enabled": False}).json()
    assert not off["enabled"]
    assert not _pointer(client, sid, "down", 10, 10).json()["changed"]

    client.post(f"/mask-sessions/{sid}/enabled", json={"enabled": True})
    _pointer(client, sid, "down", 10, 10)
    _pointer(client, sid, "leave")
    cleared = client.post(f"/mask-sessions/{sid}/clear").json()
    assert not cleared["can_undo"]
    assert client.get(f"/mask-sessions/{sid}/mask").status_code == 204


def test_mask_preview(client):
    sid = _create_session(client)["session_id"]
    resp = client.get(f"/mask-sessions/{sid}/preview")
    assert resp.status_code == 200
    assert decode(resp.content).size == (400, 200)


def test_unknown_session_is_404(client):
    resp = client.post("/mask-sessions/missing/undo")
    assert resp.status_code == 404
    assert "missing" in resp.json()["detail"]
    assert client.get("/mask-sessions/missing/mask").status_code == 404


def test_delete_session(client):
    sid = _create_session(client)["session_id"]
    assert client.delete(f"/mask-sessions/{sid}").status_code == 204
    assert client.delete(f"/mask-sessions/{sid}").status_code == 404


def test_create_session_rejects_bad_container(client):
    files = {"image": ("poster.png", solid_png((20, 10)), "image/png")}
    resp = client.post("/mask-sessions", data={"container_width": "0", "container_height": "100"}, files=files)
    assert resp.status_code == 400


def test_create_session_with_corrupt_png_is_400(client):
    files = {"image": ("poster.png", broken_png(), "image/png")}
    resp = client.post("/mask-sessions", data={"container_width": "400", "container_height": "400"}, files=files)
    assert resp.status_code == 400


# Generative edit


def test_edit_replaces_image_and_clears_mask(client, provider):
    sid = _create_session(client)["session_id"]
    _pointer(client, sid, "down", 60, 60)
    _pointer(client, sid, "up")

    resp = client.post(f"/mask-sessions/{sid}/edit", data={"prompt": "add a red balloon"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["provider"] == "fake"
    assert body["image_data_url"].startswith("data:image/png;base64,")
    assert not body["can_undo"]

    image, mask, prompt = provider.edit_calls[0]
    assert prompt == "add a red balloon"
    assert image.startswith("data:image/png;base64,")
    assert mask.startswith("data:image/png;base64,")
    assert client.get(f"/mask-sessions/{sid}/mask").status_code == 204


def test_edit_requires_prompt_and_mask(client, provider):
    sid = _create_session(client)["session_id"]
    no_prompt = client.post(f"/mask-sessions/{sid}/edit", data={"prompt": " "})
    assert no_prompt.status_code == 400
    assert no_prompt.json()["detail"] == "Please enter a description for the change."

    no_mask = client.post(f"/mask-sessions/{sid}/edit", data={"prompt": "change it"})
    assert no_mask.status_code == 400
    assert "draw a mask" in no_mask.json()["detail"]
    assert provider.edit_calls == []


def test_edit_with_unreadable_result_keeps_session(client, monkeypatch):
    fake = FakeProvider(result_png=b"broken")
    monkeypatch.setattr(app_module, "_get_provider", lambda: fake)
    sid = _create_session(client)["session_id"]
    _pointer(client, sid, "down", 60, 60)
    _pointer(client, sid, "up")

    resp = client.post(f"/mask-sessions/{sid}/edit", data={"prompt": "change it"})
    assert resp.status_code == 502
    assert client.get(f"/mask-sessions/{sid}/mask").status_code == 200


def test_edit_with_corrupt_png_result_is_502(client, monkeypatch):
    monkeypatch.setattr(app_module, "_get_provider", lambda: FakeProvider(result_png=broken_png()))
    sid = _create_session(client)["session_id"]
    _pointer(client, sid, "down", 60, 60)
    _pointer(client, sid, "up")

    resp = client.post(f"/mask-sessions/{sid}/edit", data={"prompt": "change it"})
    assert resp.status_code == 502
    assert client.get(f"/mask-sessions/{sid}/mask").status_code == 200


def test_edit_without_api_key(client, monkeypatch):
    monkeypatch.setattr(app_module.settings, "gemini_api_key", None)
    sid = _create_session(client)["session_id"]
    _pointer(client, sid, "down", 60, 60)
    _pointer(client, sid, "up")
    resp = client.post(f"/mask-sessions/{sid}/edit", data={"prompt": "change it"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "GEMINI_API_KEY is not set"


# Generation


def test_generate_posters(client, provider):
    files = [
        ("images", ("a.png", solid_png((10, 10)), "image/png")),
        ("images", ("b.png", solid_png((12, 8)), "image/png")),
    ]
    resp = client.post("/posters/generate", data={"prompt": "Summer sale", "count": "2"}, files=files)
    assert resp.status_code == 200, resp.text
    assert len(resp.json()["images"]) == 2

    refs, prompt, aspect, n = provider.generate_calls[0]
    assert len(refs) == 2 and aspect == "3:4" and n == 2
    assert all(r.startswith("data:image/png;base64,") for r in refs)


def test_generate_validates_input(client, provider):
    files = [("images", ("a.png", solid_png((10, 10)), "image/png"))]
    assert client.post("/posters/generate", data={"prompt": "x", "count": "5"}, files=files).status_code == 400
    assert client.post("/posters/generate", data={"prompt": "  "}, files=files).status_code == 400
    bad = [("images", ("a.png", b"nope", "image/png"))]
    assert client.post("/posters/generate", data={"prompt": "x"}, files=bad).status_code == 400
    assert provider.generate_calls == []
