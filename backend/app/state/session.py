# backend/app/state/session.py

import asyncio
import hashlib
import logging
import uuid
from typing import Awaitable, Callable, Dict, Optional, Tuple

from PIL import Image

from ..agents.layer_agent import run_layer_agent
from ..errors import InvalidTransitionError, LayerNotFoundError
from ..geometry import extract_crop, open_image, render_overlay
from ..logging_config import inc_metric
from ..models import AnalysisResult, Layer, SessionSnapshot, SessionStatus
from ..utils import image_to_base64, mime_type_for

log = logging.getLogger("thumbnail-separator")

# (image_b64, mime_type) -> result
Analyzer = Callable[[str, str], Awaitable[AnalysisResult]]

IDLE = SessionStatus.IDLE
ANALYZING = SessionStatus.ANALYZING
SUCCESS = SessionStatus.SUCCESS
ERROR = SessionStatus.ERROR


class AnalysisSession:
    """
    State of one user's workspace: the source image, the analysis result and
    the UI selection.

        IDLE --submit_image--> ANALYZING --> SUCCESS | ERROR
        ERROR --retry--> IDLE
        SUCCESS --reset--> IDLE

    Only one analysis can be in flight: submit_image is rejected with
    InvalidTransitionError unless the session is IDLE or ERROR.
    """

    def __init__(self, session_id: Optional[str] = None, analyzer: Optional[Analyzer] = None):
        self.session_id = session_id or str(uuid.uuid4())
        self._analyzer = analyzer

        self.status = IDLE
        self.error: Optional[str] = None
        self.image: Optional[Image.Image] = None
        self.image_digest: Optional[str] = None
        self.result: Optional[AnalysisResult] = None
        self.selected_layer_id: Optional[str] = None

        # (layer id, image digest) -> PNG bytes
        self._crops: Dict[Tuple[str, str], bytes] = {}

    # ---------- guards ----------

    def _require(self, *allowed: SessionStatus, action: str) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(f"Cannot {action} while session is {self.status.value}")

    def get_layer(self, layer_id: str) -> Layer:
        self._require(SUCCESS, action="look up a layer")
        for layer in self.result.layers:
            if layer.id == layer_id:
                return layer
        raise LayerNotFoundError(f"Layer not found: {layer_id}")

    def _discard(self) -> None:
        self.error = None
        self.image = None
        self.image_digest = None
        self.result = None
        self.selected_layer_id = None
        self._crops.clear()

    # ---------- lifecycle ----------

    async def submit_image(self, image_bytes: bytes) -> "AnalysisSession":
        """
        Analyze a new source image.

        Undecodable bytes raise ValueError and leave the session untouched.
        Analysis failures do not raise: the session ends in ERROR with the message.
        """
        self._require(IDLE, ERROR, action="submit an image")
        img = open_image(image_bytes)

        self._discard()
        self.image = img
        self.image_digest = hashlib.sha1(image_bytes).hexdigest()
        self.status = ANALYZING
        inc_metric("analyses_started")
        log.info(f"🚀 Session {self.session_id}: analyzing {img.width}x{img.height} image")

        try:
            analyzer = self._analyzer or run_layer_agent
            result = await analyzer(image_to_base64(image_bytes), mime_type_for(img))
        except asyncio.CancelledError:
            self.status = ERROR
            self.error = "Analysis was cancelled"
            raise
        except Exception as e:
            log.error(f"❌ Session {self.session_id}: analysis failed: {e}")
            inc_metric("analyses_failed")
            self.status = ERROR
            self.error = str(e) or "Failed to analyze image"
            return self

        self.result = result
        self.status = SUCCESS
        inc_metric("analyses_succeeded")
        log.info(f"🏁 Session {self.session_id}: {len(result.layers)} layers detected")
        return self

    def retry(self) -> None:
        self._require(ERROR, action="retry")
        self.reset()

    def reset(self) -> None:
        """Back to IDLE, dropping the image, result, selection and crops."""
        self._require(IDLE, SUCCESS, ERROR, action="reset")
        self._discard()
        self.status = IDLE

    # ---------- result operations ----------

    def toggle_layer_visibility(self, layer_id: str) -> Layer:
        self._require(SUCCESS, action="toggle a layer")
        layer = self.get_layer(layer_id)
        layer.visible = not layer.visible
        return layer

    def select_layer(self, layer_id: Optional[str]) -> None:
        self._require(SUCCESS, action="select a layer")
        if layer_id is not None:
            self.get_layer(layer_id)
        self.selected_layer_id = layer_id

    def export_result(self) -> bytes:
        """JSON document of the full current result; does not change the session."""
        self._require(SUCCESS, action="export")
        return self.result.model_dump_json(indent=2).encode("utf-8")

    def crop(self, layer_id: str) -> bytes:
        """
        PNG crop of one layer, memoized per (layer id, source image).

        Empty bytes mean the crop is unavailable; those are not cached.
        """
        self._require(SUCCESS, action="crop a layer")
        layer = self.get_layer(layer_id)

        key = (layer.id, self.image_digest)
        cached = self._crops.get(key)
        if cached is not None:
            return cached

        data = extract_crop(self.image, layer.box)
        if data:
            self._crops[key] = data
        return data

    def overlay(self) -> bytes:
        self._require(SUCCESS, action="render the overlay")
        return render_overlay(self.image, self.result.layers, self.selected_layer_id)

    @property
    def cached_crop_count(self) -> int:
        return len(self._crops)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            status=self.status,
            error=self.error,
            image_width=self.image.width if self.image is not None else None,
            image_height=self.image.height if self.image is not None else None,
            selected_layer_id=self.selected_layer_id,
            result=self.result,
        )
