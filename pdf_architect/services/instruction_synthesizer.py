"""
Instruction Synthesizer: natural-language command -> validated edit instructions.

The model answers with a JSON array of EditInstruction objects. Parsing is
best-effort: malformed output never raises, it yields an empty list with
status PARSE_FAILURE so callers can tell it apart from a model that simply
proposed no edits (status EMPTY).
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from pdf_architect.core.errors import SynthesisError
from pdf_architect.llm.gemini_client import GeminiClient, _repair_truncated_array
from pdf_architect.schemas.edit import EDIT_INSTRUCTION_RESPONSE_SCHEMA, EditInstruction
from pdf_architect.services.region_resolver import is_no_text
from pdf_architect.utils.coordinates import SelectionArea

logger = logging.getLogger(__name__)

_instruction_list = TypeAdapter(List[EditInstruction])


class SynthesisStatus(Enum):
    OK = "ok"
    EMPTY = "empty"                  # well-formed answer with no edits
    PARSE_FAILURE = "parse_failure"  # answer was not a valid instruction array
    ERROR = "error"                  # the model could not be reached


@dataclass
class SynthesisResult:
    status: SynthesisStatus
    instructions: List[EditInstruction] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def actionable(self) -> bool:
        return self.status == SynthesisStatus.OK and bool(self.instructions)


def build_prompt(
    command: str,
    document_text: str,
    page_count: int,
    selection: Optional[SelectionArea] = None,
    selected_text: Optional[str] = None,
    context_char_limit: int = 3000,
) -> str:
    if selection is not None:
        spatial = (
            f"User selected box: X1:{selection.x1:.2f}%, Y1:{selection.y1:.2f}%, "
            f"X2:{selection.x2:.2f}%, Y2:{selection.y2:.2f}% "
            "(measured from the TOP-left of the page, Y grows downward)."
        )
    else:
        spatial = "No specific area selected."
    found = "None" if is_no_text(selected_text) else selected_text.strip()

    return f"""Act as a PDF layout expert. Interpret the following user command for a PDF document.

GLOBAL CONTEXT (Text extracted from the document):
{document_text[:context_char_limit]}

SPATIAL CONTEXT:
{spatial}
TEXT FOUND IN SELECTION: "{found}"

USER COMMAND:
"{command}"

TOTAL PAGES: {page_count}

Instructions:
1. CRITICAL: Try to preserve original formatting (font size, color, relative position) when replacing text.
2. If the user refers to "this" or "here", they mean the selection area.
3. For text replacement (REPLACE_TEXT), set 'targetText' to an EXACT substring of the document text to replace.
4. If the user wants to add a new picture, use GENERATE_IMAGE with an 'imagePrompt'.
5. Coordinates: X=0 Left, X=100 Right. Y=0 Bottom, Y=100 Top (the document uses a bottom-up Y axis).
   The selection box above is top-down, so a selected Y becomes y = 100 - selectedY.
6. 'width' and 'height' are percentages of the page; 'color' is a hex string like "#ff0000".

Output a JSON array of EditInstruction objects. Return [] if no edit applies."""


def build_request_parts(prompt: str, selection_image: Optional[bytes] = None) -> List[Dict[str, Any]]:
    """Image first (visual context), then the text block."""
    parts: List[Dict[str, Any]] = [{"text": prompt}]
    if selection_image:
        parts.insert(0, GeminiClient.image_part(selection_image))
    return parts


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if "```" in text:
        match = re.search(r"```(?:json)?\s*\n?([\s\S]*?)\n?\s*```", text)
        if match:
            return match.group(1).strip()
        text = re.sub(r"^```(?:json)?\s*\n?", "", text)
        text = re.sub(r"\n?\s*```\s*$", "", text)
    return text.strip()


def _salvage(items: List[Any]) -> List[EditInstruction]:
    kept = []
    for item in items:
        try:
            kept.append(EditInstruction.model_validate(item))
        except ValidationError as e:
            logger.warning(f"[SYNTH] Dropping unusable salvaged item: {e.errors()[:1]}")
    return kept


def parse_instructions(text: Optional[str]) -> SynthesisResult:
    """Validate the model's answer into instructions. Never raises."""
    body = _strip_code_fence(text or "")
    if not body:
        return SynthesisResult(SynthesisStatus.PARSE_FAILURE, error="empty response")

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        repaired = _repair_truncated_array(body)
        if repaired is None:
            logger.error(f"Failed to parse Gemini response: {e}")
            return SynthesisResult(SynthesisStatus.PARSE_FAILURE, error=str(e))
        instructions = _salvage(repaired)
        logger.warning(f"[JSON] Repaired truncated JSON, salvaged {len(instructions)} instruction(s)")
        if not instructions:
            return SynthesisResult(SynthesisStatus.PARSE_FAILURE, error=str(e))
        return SynthesisResult(SynthesisStatus.OK, instructions)

    # Some answers wrap the array: {"instructions": [...]}
    if isinstance(data, dict):
        wrapped = next((v for v in data.values() if isinstance(v, list)), None)
        data = wrapped if wrapped is not None else [data]

    try:
        instructions = _instruction_list.validate_python(data)
    except ValidationError as e:
        logger.error(f"Gemini response does not match the instruction schema: {e}")
        return SynthesisResult(SynthesisStatus.PARSE_FAILURE, error=str(e))

    if not instructions:
        return SynthesisResult(SynthesisStatus.EMPTY)
    return SynthesisResult(SynthesisStatus.OK, instructions)


class InstructionSynthesizer:
    def __init__(self, client: GeminiClient, context_char_limit: int = 3000):
        self.client = client
        self.context_char_limit = context_char_limit

    async def synthesize(
        self,
        command: str,
        document_text: str,
        page_count: int,
        selection: Optional[SelectionArea] = None,
        selected_text: Optional[str] = None,
        selection_image: Optional[bytes] = None,
    ) -> SynthesisResult:
        prompt = build_prompt(
            command, document_text, page_count,
            selection=selection,
            selected_text=selected_text,
            context_char_limit=self.context_char_limit,
        )
        parts = build_request_parts(prompt, selection_image)
        logger.info(f"[SYNTH] Sending command to model: {command[:100]}")
        try:
            text = await self.client.generate_instructions(parts, EDIT_INSTRUCTION_RESPONSE_SCHEMA)
        except SynthesisError as e:
            return SynthesisResult(SynthesisStatus.ERROR, error=str(e))

        result = parse_instructions(text)
        logger.info(f"[SYNTH] {result.status.value}: {len(result.instructions)} instruction(s)")
        return result
