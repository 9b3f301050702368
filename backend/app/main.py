# backend/app/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .config import EXPORT_FILENAME, get_api_key
from .errors import (
    ConfigurationError,
    InvalidTransitionError,
    LayerNotFoundError,
    SessionNotFoundError,
)
from .logging_config import get_metrics_snapshot, log
from .models import SessionSnapshot
from .scoring import build_chart_data
from .state.session import AnalysisSession
from .state.store import create_session, drop_session, get_session
from .utils import crop_filename, download_response


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        get_api_key()
    except ConfigurationError as e:
        log.critical(f"💥 {e}")
        raise
    log.info("🚀 Thumbnail Separator backend started")
    yield
    log.info("Thumbnail Separator backend stopped")


app = FastAPI(title="Thumbnail Separator", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _session_or_404(session_id: str) -> AnalysisSession:
    try:
        return get_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _conflict(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


# ==========================================================
#                       SESSIONS
# ==========================================================


@app.post("/api/v1/sessions", response_model=SessionSnapshot)
async def new_session():
    session = create_session()
    log.info(f"🆕 Session {session.session_id} created")
    return session.snapshot()


@app.get("/api/v1/sessions/{session_id}", response_model=SessionSnapshot)
async def read_session(session_id: str):
    return _session_or_404(session_id).snapshot()


@app.delete("/api/v1/sessions/{session_id}")
async def delete_session(session_id: str):
    _session_or_404(session_id)
    drop_session(session_id)
    return {"status": "deleted"}


# ==========================================================
#                    ANALYSIS LIFECYCLE
# ==========================================================


@app.post("/api/v1/sessions/{session_id}/image", response_model=SessionSnapshot)
async def submit_image(session_id: str, file: UploadFile = File(...)):
    """
    Upload the source image and run the layer analysis.

    Analysis failures come back as a snapshot with status ERROR, not as HTTP errors.
    """
    session = _session_or_404(session_id)
    img_bytes = await file.read()
    try:
        await session.submit_image(img_bytes)
    except InvalidTransitionError as e:
        raise _conflict(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid image uploaded: {e}")
    return session.snapshot()


@app.post("/api/v1/sessions/{session_id}/retry", response_model=SessionSnapshot)
async def retry_session(session_id: str):
    session = _session_or_404(session_id)
    try:
        session.retry()
    except InvalidTransitionError as e:
        raise _conflict(e)
    return session.snapshot()


@app.post("/api/v1/sessions/{session_id}/reset", response_model=SessionSnapshot)
async def reset_session(session_id: str):
    session = _session_or_404(session_id)
    try:
        session.reset()
    except InvalidTransitionError as e:
        raise _conflict(e)
    return session.snapshot()


# ==========================================================
#                     LAYERS & SELECTION
# ==========================================================


@app.post("/api/v1/sessions/{session_id}/layers/{layer_id}/visibility", response_model=SessionSnapshot)
async def toggle_visibility(session_id: str, layer_id: str):
    session = _session_or_404(session_id)
    try:
        session.toggle_layer_visibility(layer_id)
    except InvalidTransitionError as e:
        raise _conflict(e)
    except LayerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return session.snapshot()


@app.post("/api/v1/sessions/{session_id}/selection", response_model=SessionSnapshot)
async def select_layer(session_id: str, layer_id: Optional[str] = Form(None)):
    """An empty or missing layer_id clears the selection."""
    session = _session_or_404(session_id)
    try:
        session.select_layer(layer_id or None)
    except InvalidTransitionError as e:
        raise _conflict(e)
    except LayerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return session.snapshot()


@app.get("/api/v1/sessions/{session_id}/layers/{layer_id}/crop")
async def download_crop(
    session_id: str,
    layer_id: str,
    source: str = Query("list", pattern="^(canvas|list)$"),
):
    """
    PNG crop of one layer as a download.

    204 when the crop cannot be rendered (the UI shows a placeholder).
    """
    session = _session_or_404(session_id)
    try:
        layer = session.get_layer(layer_id)
        data = session.crop(layer_id)
    except InvalidTransitionError as e:
        raise _conflict(e)
    except LayerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not data:
        return Response(status_code=204)
    return download_response(data, crop_filename(layer.label, source), "image/png")


@app.get("/api/v1/sessions/{session_id}/overlay")
async def overlay(session_id: str):
    session = _session_or_404(session_id)
    try:
        data = session.overlay()
    except InvalidTransitionError as e:
        raise _conflict(e)
    if not data:
        return Response(status_code=204)
    return Response(content=data, media_type="image/png")


# ==========================================================
#                   ANALYSIS PANEL + EXPORT
# ==========================================================


@app.get("/api/v1/sessions/{session_id}/analysis")
async def analysis_panel(session_id: str):
    session = _session_or_404(session_id)
    if session.result is None:
        raise HTTPException(status_code=409, detail=f"No analysis while session is {session.status.value}")
    return {
        "analysis": session.result.analysis.model_dump(),
        "charts": build_chart_data(session.result.analysis, session.result.layers),
    }


@app.get("/api/v1/sessions/{session_id}/export")
async def export_result(session_id: str):
    session = _session_or_404(session_id)
    try:
        data = session.export_result()
    except InvalidTransitionError as e:
        raise _conflict(e)
    return download_response(data, EXPORT_FILENAME, "application/json")


# ==========================================================
#                     METRICS + HEALTH
# ==========================================================


@app.get("/metrics")
async def metrics():
    return get_metrics_snapshot()


@app.get("/health")
async def health():
    return {"status": "ok", "agents": ["layer"]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app.main:app", host="127.0.0.1", port=8000, reload=True)
