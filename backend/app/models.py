# backend/app/models.py

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ElementType(str, Enum):
    PERSON = "person"
    OBJECT = "object"
    TEXT = "text"
    LOGO = "logo"
    BACKGROUND = "background"
    EFFECT = "effect"


class BoundingBox(BaseModel):
    """Axis-aligned box, every edge normalized to [0, 1] of the image size."""

    top: float
    left: float
    bottom: float
    right: float


class Layer(BaseModel):
    id: str
    label: str
    category: ElementType
    subtype: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    box: BoundingBox
    z_index: int
    dominant_color: str
    visible: bool = True


class WeightCenter(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 50.0
    y: float = 50.0


class CompositionAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule_of_thirds_score: float
    visual_balance_score: float
    dominant_colors: List[str]
    brightness_map: str = "Balanced"
    contrast_level: str = "Medium"
    suggestions: List[str]
    eye_contact: bool
    visual_weight_center: WeightCenter = Field(default_factory=WeightCenter)


class AnalysisResult(BaseModel):
    layers: List[Layer]
    analysis: CompositionAnalysis


class SessionStatus(str, Enum):
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class SessionSnapshot(BaseModel):
    session_id: str
    status: SessionStatus
    error: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    selected_layer_id: Optional[str] = None
    result: Optional[AnalysisResult] = None
