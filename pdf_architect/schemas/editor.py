# File: pdf_architect/schemas/editor.py
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from pdf_architect.schemas.edit import EditInstruction, SelectionAreaModel


class DocumentMetadata(BaseModel):
    session_id: str
    name: str
    page_count: int
    file_size: int


class HistoryState(BaseModel):
    length: int
    cursor: int
    can_undo: bool
    can_redo: bool


class RegionState(BaseModel):
    page_number: int
    selected_text: str
    ocr_text: str
    layout_text: str
    ocr_error: Optional[str] = None


class SessionState(BaseModel):
    session_id: str
    name: Optional[str] = None
    page_count: int
    current_page: int
    tool: str
    selection_state: str
    selection: Optional[SelectionAreaModel] = None
    region: Optional[RegionState] = None
    history: HistoryState
    is_processing: bool
    status: Optional[str] = None


class SurfaceBoundsModel(BaseModel):
    left: float = 0.0
    top: float = 0.0
    width: float
    height: float


class PointerRequest(BaseModel):
    phase: str = Field(..., pattern="^(down|move|up)$")
    client_x: float = 0.0
    client_y: float = 0.0
    touches: Optional[List[Tuple[float, float]]] = None
    surface: Optional[SurfaceBoundsModel] = None


class PageRequest(BaseModel):
    page_number: int


class ToolRequest(BaseModel):
    tool: str = Field(..., pattern="^(ai|text|rect)$")


class CommandRequest(BaseModel):
    command: str


class ManualEditRequest(BaseModel):
    instructions: List[EditInstruction]


class ManualTextRequest(BaseModel):
    text: str
    font_size: float = 18
    color: str = "#000000"


class ManualShapeRequest(BaseModel):
    shape_type: str = "rect"


class ManualImageRequest(BaseModel):
    image_url: Optional[str] = None
    image_base64: Optional[str] = None


class EditResponse(BaseModel):
    applied: bool
    synthesis_status: Optional[str] = None
    instructions: List[EditInstruction] = []
    applied_indices: List[int] = []
    skipped: List[str] = []
    state: SessionState
