from __future__ import annotations

import logging
from io import BytesIO
from typing import Literal

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from PIL import Image
from pydantic import BaseModel, Field, ValidationError

from poster_studio.assembly.export import ExportFormat, ExportRequest, LogoWatermark, TextWatermark, export_image
from poster_studio.config import settings
from poster_studio.dataurl import ImageSource, image_to_data_url, open_image
from poster_studio.errors import (
    ImageLoadError,
    InvalidDimension,
    PosterStudioError,
    ProviderError,
    SessionNotFound,
)
from poster_studio.providers.base import ImageProvider
from poster_studio.providers.gemini_provider import GeminiProvider
from poster_studio.sessions import MaskSession, MaskSessionStore

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="poster_studio")

sessions = MaskSessionStore()

# Opacity slider bounds in the download dialog.
MIN_WATERMARK_OPACITY = 0.1
MAX_WATERMARK_OPACITY = 1.0


def _get_provider() -> ImageProvider:
    if not settings.gemini_api_key:
        raise HTTPException(status_code=400, detail="GEMINI_API_KEY is not set")
    return GeminiProvider(api_key=settings.gemini_api_key)


def _status_for(exc: PosterStudioError) -> int:
    if isinstance(exc, SessionNotFound):
        return 404
    if isinstance(exc, (InvalidDimension, ImageLoadError)):
        return 400
    if isinstance(exc, ProviderError):
        return 502
    return 500


@app.exception_handler(PosterStudioError)
async def _poster_studio_error_handler(request: Request, exc: PosterStudioError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


async def _read_image_input(upload: UploadFile | None, data_url: str, label: str = "image") -> ImageSource:
    if upload is not None:
        content = await upload.read()
        if content:
            return content
    if data_url and data_url.strip():
        return data_url.strip()
    raise HTTPException(status_code=400, detail=f"provide an {label} upload or {label}_data_url")


def _pil_to_png_bytes(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _png_response(content: bytes) -> Response:
    return Response(content=content, media_type="image/png")


# Exports


@app.post("/exports")
async def create_export(
    image: UploadFile | None = File(None),
    image_data_url: str = Form(""),
    format: str = Form("png"),
    scale: float = Form(1.0),
    filename: str = Form("poster"),
    watermark_type: str = Form(""),
    watermark_text: str = Form(""),
    watermark_logo: UploadFile | None = File(None),
    watermark_logo_data_url: str = Form(""),
    watermark_opacity: float = Form(settings.watermark_default_opacity),
    watermark_position: str = Form(settings.watermark_default_position),
    watermark_size: float = Form(settings.watermark_default_size),
):
    source = await _read_image_input(image, image_data_url)

    if scale not in settings.scale_presets.values():
        allowed = ", ".join(f"{v:g}" for v in settings.scale_presets.values())
        raise HTTPException(status_code=400, detail=f"scale must be one of: {allowed}")

    kind = (watermark_type or "").strip().lower()
    if kind and not MIN_WATERMARK_OPACITY <= watermark_opacity <= MAX_WATERMARK_OPACITY:
        raise HTTPException(
            status_code=400,
            detail=f"watermark_opacity must be between {MIN_WATERMARK_OPACITY} and {MAX_WATERMARK_OPACITY}",
        )

    watermark: TextWatermark | LogoWatermark | None = None
    try:
        # Like the download dialog, a watermark without content is silently dropped.
        if kind == "text" and watermark_text.strip():
            watermark = TextWatermark(
                text=watermark_text,
                opacity=watermark_opacity,
                position=watermark_position,
                size=watermark_size,
            )
        elif kind == "logo":
            logo: bytes | str = b""
            if watermark_logo is not None:
                logo = await watermark_logo.read()
            if not logo and watermark_logo_data_url.strip():
                logo = watermark_logo_data_url.strip()
            if logo:
                watermark = LogoWatermark(
                    image=logo,
                    opacity=watermark_opacity,
                    position=watermark_position,
                    size=watermark_size,
                )
        elif kind:
            raise HTTPException(status_code=400, detail="watermark_type must be 'text' or 'logo'")

        request = ExportRequest(
            source_image=source,
            format=format.strip().lower(),
            scale=scale,
            watermark=watermark,
            filename=filename,
        )
    except ValidationError as exc:
        detail = exc.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=400, detail=detail) from exc

    result = export_image(request)
    headers = {
        "Content-Disposition": f'attachment; filename="{result.filename}"',
        "X-Watermark-Applied": "true" if result.watermark_applied else "false",
    }
    return Response(content=result.content, media_type=result.media_type, headers=headers)


@app.get("/exports/options")
def export_options():
    return {
        "formats": [f.value for f in ExportFormat],
        "scales": settings.scale_presets,
        "watermark": {
            "types": ["text", "logo"],
            "default_text": settings.watermark_default_text,
            "opacity": {
                "min": MIN_WATERMARK_OPACITY,
                "max": MAX_WATERMARK_OPACITY,
                "step": 0.05,
                "default": settings.watermark_default_opacity,
            },
            "default_position": settings.watermark_default_position,
            "default_size": settings.watermark_default_size,
        },
    }


# Mask sessions


class PointerEvent(BaseModel):
    event: Literal["down", "move", "up", "leave"]
    x: float = 0.0
    y: float = 0.0


class BrushUpdate(BaseModel):
    brush_size: float = Field(gt=0)


class EnabledUpdate(BaseModel):
    enabled: bool


def _session_state(session: MaskSession) -> dict:
    editor = session.editor
    return {
        "session_id": session.session_id,
        "state": editor.state.value,
        "enabled": editor.enabled,
        "brush_size": editor.brush_size,
        "can_undo": editor.can_undo,
        "history_depth": len(editor.history),
    }


@app.post("/mask-sessions")
async def create_mask_session(
    image: UploadFile | None = File(None),
    image_data_url: str = Form(""),
    container_width: float = Form(...),
    container_height: float = Form(...),
    brush_size: float = Form(settings.default_brush_size),
):
    source = await _read_image_input(image, image_data_url)
    if brush_size <= 0:
        raise HTTPException(status_code=400, detail="brush_size must be positive")
    session = sessions.create_session(source, container_width, container_height, brush_size=brush_size)
    fitted = session.editor.fit_result
    width, height = session.editor.size or (0, 0)
    return {
        **_session_state(session),
        "width": width,
        "height": height,
        "offset_x": fitted.offset_x if fitted else 0.0,
        "offset_y": fitted.offset_y if fitted else 0.0,
    }


@app.post("/mask-sessions/{session_id}/pointer")
def mask_pointer(session_id: str, payload: PointerEvent):
    session = sessions.get(session_id)
    with session.lock:
        editor = session.editor
        changed = False
        if payload.event == "down":
            changed = editor.pointer_down(payload.x, payload.y)
        elif payload.event == "move":
            changed = editor.pointer_move(payload.x, payload.y)
        elif payload.event == "up":
            editor.pointer_up()
        else:
            editor.pointer_leave()
        return {**_session_state(session), "changed": changed}


@app.post("/mask-sessions/{session_id}/brush")
def mask_brush(session_id: str, payload: BrushUpdate):
    session = sessions.get(session_id)
    with session.lock:
        session.editor.brush_size = payload.brush_size
        return _session_state(session)


@app.post("/mask-sessions/{session_id}/enabled")
def mask_enabled(session_id: str, payload: EnabledUpdate):
    session = sessions.get(session_id)
    with session.lock:
        session.editor.enabled = payload.enabled
        if not payload.enabled:
            session.editor.pointer_up()
        return _session_state(session)


@app.post("/mask-sessions/{session_id}/undo")
def mask_undo(session_id: str):
    session = sessions.get(session_id)
    with session.lock:
        undone = session.editor.undo()
        return {**_session_state(session), "undone": undone}


@app.post("/mask-sessions/{session_id}/clear")
def mask_clear(session_id: str):
    session = sessions.get(session_id)
    with session.lock:
        session.editor.clear()
        return _session_state(session)


@app.get("/mask-sessions/{session_id}/mask")
def mask_export(session_id: str):
    session = sessions.get(session_id)
    with session.lock:
        png = session.editor.export_mask()
    if png is None:
        return Response(status_code=204)
    return _png_response(png)


@app.get("/mask-sessions/{session_id}/preview")
def mask_preview(session_id: str):
    session = sessions.get(session_id)
    with session.lock:
        preview = session.editor.preview()
    return _png_response(_pil_to_png_bytes(preview))


@app.delete("/mask-sessions/{session_id}", status_code=204)
def delete_mask_session(session_id: str):
    sessions.delete(session_id)
    return Response(status_code=204)


@app.post("/mask-sessions/{session_id}/edit")
async def apply_generative_edit(session_id: str, prompt: str = Form("")):
    session = sessions.get(session_id)
    if not prompt.strip():
        raise HTTPException(status_code=400, detail="Please enter a description for the change.")
    with session.lock:
        mask = session.editor.export_mask_data_url()
        source = session.source_image
    if mask is None:
        raise HTTPException(status_code=400, detail="Please draw a mask on the image to indicate the area to change.")

    provider = _get_provider()
    edited = await provider.edit(image=source, mask=mask, prompt=prompt)

    # Validate before swapping so a bad payload leaves the session untouched.
    try:
        open_image(edited.data_url)
    except ImageLoadError as exc:
        raise ProviderError(f"Model returned an unreadable image: {exc}") from exc
    with session.lock:
        session.reload(edited.data_url)
        state = _session_state(session)
    return {**state, "image_data_url": edited.data_url, "provider": edited.provider, "model": edited.model}


# Generation


@app.post("/posters/generate")
async def generate_posters(
    images: list[UploadFile] = File(...),
    prompt: str = Form(...),
    aspect_ratio: str = Form("3:4"),
    count: int = Form(1),
):
    if not 1 <= count <= 4:
        raise HTTPException(status_code=400, detail="count must be between 1 and 4")
    if not prompt.strip():
        raise HTTPException(status_code=400, detail="prompt is required")

    refs: list[str] = []
    for upload in images:
        content = await upload.read()
        # Normalizes whatever was uploaded to PNG and rejects undecodable files.
        refs.append(image_to_data_url(open_image(content)))
    if not refs:
        raise HTTPException(status_code=400, detail="upload at least one image")

    provider = _get_provider()
    generated = await provider.generate(images=refs, prompt=prompt, aspect_ratio=aspect_ratio, n=count)
    if not generated:
        raise ProviderError("Model failed to generate any image.")
    return {"images": [g.data_url for g in generated]}


