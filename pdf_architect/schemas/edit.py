# File: pdf_architect/schemas/edit.py
import base64
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from pdf_architect.utils.coordinates import SelectionArea


class ActionKind(str, Enum):
    REPLACE_TEXT = "REPLACE_TEXT"
    ADD_TEXT = "ADD_TEXT"
    ADD_IMAGE = "ADD_IMAGE"
    GENERATE_IMAGE = "GENERATE_IMAGE"
    DELETE_TEXT = "DELETE_TEXT"
    ADD_SHAPE = "ADD_SHAPE"
    UNKNOWN = "UNKNOWN"


class ShapeType(str, Enum):
    RECT = "rect"
    CIRCLE = "circle"


class SelectionAreaModel(BaseModel):
    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def from_area(cls, area: SelectionArea) -> "SelectionAreaModel":
        return cls(x1=area.x1, y1=area.y1, x2=area.x2, y2=area.y2)


class EditParameters(BaseModel):
    target_text: Optional[str] = Field(None, alias="targetText")
    new_text: Optional[str] = Field(None, alias="newText")
    x: Optional[float] = None  # 0-100, from the left
    y: Optional[float] = None  # 0-100, from the bottom
    font_size: Optional[float] = Field(None, alias="fontSize")
    color: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None
    shape_type: Optional[str] = Field(None, alias="shapeType")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    image_prompt: Optional[str] = Field(None, alias="imagePrompt")
    image_bytes: Optional[bytes] = Field(None, alias="imageBytes")  # base64 in JSON
    selection_area: Optional[SelectionAreaModel] = Field(None, alias="selectionArea")

    class Config:
        populate_by_name = True

    @field_validator("image_bytes", mode="before")
    @classmethod
    def _decode_image_bytes(cls, value: Any) -> Any:
        # JSON carries base64 text; Python callers pass raw bytes
        if isinstance(value, str):
            payload = value.partition(",")[2] if value.startswith("data:") else value
            return base64.b64decode(payload)
        return value

    @field_serializer("image_bytes")
    def _encode_image_bytes(self, value: Optional[bytes]) -> Optional[str]:
        return base64.b64encode(value).decode("ascii") if value is not None else None


class EditInstruction(BaseModel):
    action: ActionKind
    page_number: int = Field(1, alias="pageNumber")
    explanation: str = ""
    parameters: EditParameters = Field(default_factory=EditParameters)

    class Config:
        populate_by_name = True

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_action(cls, value: Any) -> Any:
        if isinstance(value, ActionKind):
            return value
        try:
            return ActionKind(str(value).strip().upper())
        except ValueError:
            return ActionKind.UNKNOWN

    @field_validator("parameters", mode="before")
    @classmethod
    def _default_parameters(cls, value: Any) -> Any:
        return {} if value is None else value


# Gemini responseSchema for an array of EditInstruction objects.
EDIT_INSTRUCTION_RESPONSE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "action": {
                "type": "STRING",
                "enum": [kind.value for kind in ActionKind],
            },
            "pageNumber": {"type": "INTEGER"},
            "explanation": {"type": "STRING"},
            "parameters": {
                "type": "OBJECT",
                "properties": {
                    "targetText": {"type": "STRING"},
                    "newText": {"type": "STRING"},
                    "x": {"type": "NUMBER"},
                    "y": {"type": "NUMBER"},
                    "fontSize": {"type": "NUMBER"},
                    "color": {"type": "STRING"},
                    "width": {"type": "NUMBER"},
                    "height": {"type": "NUMBER"},
                    "shapeType": {"type": "STRING"},
                    "imagePrompt": {"type": "STRING"},
                },
            },
        },
        "required": ["action", "pageNumber", "parameters", "explanation"],
    },
}
