from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Optional, Dict, Any, Literal, Union
from datetime import datetime
from enum import Enum

class EditAction(str, Enum):
    FILTER = "filter"
    REMOVE_BACKGROUND = "remove_background"
    GENERATE_OR_TRANSFORM = "generate_or_transform"

class SessionState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    PROCESSING = "processing"
    EDITED = "edited"

class EditRequest(BaseModel):
    """Body of POST /edit-image. Fields are optional so the route can answer with its own 400."""
    model_config = ConfigDict(frozen=True)

    image: Optional[str] = None  # data URL
    command: Optional[str] = None

class Intent(BaseModel):
    """Structured classification of an edit command"""
    action: str = Field(..., min_length=1, description="One of EditAction")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Action-specific parameters")
    description: str = Field("", description="Human-readable summary of the edit")

class FilterInstruction(BaseModel):
    """Filter to be rendered by the caller on the echoed source image"""
    type: Literal["filter"] = "filter"
    filter: Optional[str] = None
    image: str

class ProcessedImage(BaseModel):
    type: Literal["image"] = "image"
    image: str  # data URL

EditResult = Annotated[Union[FilterInstruction, ProcessedImage], Field(discriminator="type")]

class EditResponse(BaseModel):
    success: bool = True
    result: EditResult
    analysis: str
    timestamp: str

class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    code: Optional[str] = None

class HealthResponse(BaseModel):
    status: str
    version: str
    endpoints: Dict[str, str]

class HistoryEntry(BaseModel):
    command: str
    timestamp: datetime = Field(default_factory=datetime.now)
