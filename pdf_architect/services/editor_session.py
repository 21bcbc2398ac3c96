# File: pdf_architect/services/editor_session.py
"""
Editor session: the application state of one open document.

Holds the revision history, the current page and tool, the selection state
machine and the resolved region, and runs the command -> instructions ->
apply cycle. Every failure becomes a short-lived status message and leaves
the document untouched.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

from PIL import Image

from pdf_architect.core.config import settings
from pdf_architect.core.errors import (
    DocumentLoadError,
    NoDocumentError,
    RegionError,
    SessionBusyError,
)
from pdf_architect.schemas.edit import (
    ActionKind,
    EditInstruction,
    EditParameters,
    SelectionAreaModel,
    ShapeType,
)
from pdf_architect.services.edit_applicator import ApplyReport, ImageFetcher, apply_edits_with_report
from pdf_architect.services.history import History
from pdf_architect.services.instruction_synthesizer import (
    InstructionSynthesizer,
    SynthesisResult,
    SynthesisStatus,
)
from pdf_architect.services.region_resolver import OcrFunction, RegionContent, resolve_region
from pdf_architect.services.selection import SelectionCommit, SelectionMachine
from pdf_architect.utils.coordinates import (
    PointerEvent,
    SelectionArea,
    SurfaceBounds,
    selection_to_document_box,
    to_percent,
)
from pdf_architect.utils.pdf_document import (
    clamp_page_number,
    extract_context_text,
    inspect_pdf,
    render_page,
)

logger = logging.getLogger(__name__)

ImageGenerator = Callable[[str], Awaitable[Optional[str]]]
Renderer = Callable[[bytes, int, float], Image.Image]


class ToolMode(Enum):
    AI = "ai"
    TEXT = "text"
    RECT = "rect"


class StatusBoard:
    """Transient status line; a message disappears ``clear_after`` seconds after posting."""

    def __init__(self, clear_after: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.clear_after = clear_after
        self._clock = clock
        self._message: Optional[str] = None
        self._posted_at = 0.0

    def post(self, message: str) -> None:
        logger.info(f"[STATUS] {message}")
        self._message = message
        self._posted_at = self._clock()

    @property
    def message(self) -> Optional[str]:
        if self._message is None:
            return None
        if self._clock() - self._posted_at >= self.clear_after:
            self._message = None
        return self._message


@dataclass
class EditOutcome:
    applied: bool
    instructions: List[EditInstruction] = field(default_factory=list)
    report: Optional[ApplyReport] = None
    synthesis: Optional[SynthesisResult] = None


def export_filename(name: Optional[str]) -> str:
    stem = Path(name or "document.pdf").stem or "document"
    return f"{stem}_edited.pdf"


class EditorSession:
    def __init__(
        self,
        ocr: Optional[OcrFunction] = None,
        synthesizer: Optional[InstructionSynthesizer] = None,
        image_generator: Optional[ImageGenerator] = None,
        image_fetcher: Optional[ImageFetcher] = None,
        renderer: Renderer = render_page,
        render_scale: float = settings.RENDER_SCALE,
        status_board: Optional[StatusBoard] = None,
    ):
        self.ocr = ocr
        self.synthesizer = synthesizer
        self.image_generator = image_generator
        self.image_fetcher = image_fetcher
        self.renderer = renderer
        self.render_scale = render_scale
        self.status = status_board or StatusBoard(settings.STATUS_CLEAR_SECONDS)

        self.name: Optional[str] = None
        self.file_size = 0
        self.page_count = 0
        self.current_page = 1
        self.tool = ToolMode.AI
        self.history = History()
        self.selection = SelectionMachine(handle_tolerance=settings.HANDLE_TOLERANCE)
        self.region: Optional[RegionContent] = None
        self.surface: Optional[SurfaceBounds] = None
        self.is_processing = False
        self._generation = 0
        self._raster_key: Optional[Tuple[int, int, int, float]] = None
        self._raster: Optional[Image.Image] = None

    # ── Document ──────────────────────────────────────────────────────────

    @property
    def document(self) -> Optional[bytes]:
        return self.history.current

    def _require_document(self) -> bytes:
        doc = self.document
        if doc is None:
            raise NoDocumentError("No document loaded")
        return doc

    def load_document(self, name: str, data: bytes) -> int:
        """Validate and open an upload. On failure nothing changes."""
        try:
            page_count = inspect_pdf(data)
        except DocumentLoadError:
            self.status.post("Upload Error")
            raise
        self._generation += 1
        self.name = name
        self.file_size = len(data)
        self.page_count = page_count
        self.current_page = 1
        self.history.load(data)
        self._reset_selection()
        self._raster_key = None
        self._raster = None
        logger.info(f"[SESSION] Loaded '{name}' ({page_count} pages, {len(data)} bytes)")
        return page_count

    def set_page(self, page_number: int) -> int:
        self._require_document()
        page = clamp_page_number(page_number, self.page_count)
        if page != self.current_page:
            self.current_page = page
            self._reset_selection()
        return self.current_page

    def set_tool(self, tool: ToolMode) -> None:
        if tool != self.tool:
            self.tool = tool
            self._reset_selection()

    def _reset_selection(self) -> None:
        self.selection.clear()
        self.region = None

    def page_raster(self) -> Image.Image:
        """Rendered raster of the current page of the current revision (cached)."""
        doc = self._require_document()
        key = (self._generation, self.history.cursor, self.current_page, self.render_scale)
        if self._raster_key != key:
            self._raster = self.renderer(doc, self.current_page, self.render_scale)
            self._raster_key = key
        return self._raster

    # ── Pointer handling (synchronous, never touches the network) ─────────

    def _percent(self, event: PointerEvent, bounds: Optional[SurfaceBounds]) -> Tuple[float, float]:
        if bounds is not None:
            self.surface = bounds
        return to_percent(event, self.surface)

    def pointer_down(self, event: PointerEvent, bounds: Optional[SurfaceBounds] = None) -> None:
        if self.document is None:
            return
        x, y = self._percent(event, bounds)
        self.selection.pointer_down(x, y)
        if self.selection.selection is None:
            self.region = None

    def pointer_move(self, event: PointerEvent, bounds: Optional[SurfaceBounds] = None) -> Optional[SelectionArea]:
        if self.document is None or not self.selection.is_active:
            return self.selection.selection
        x, y = self._percent(event, bounds)
        return self.selection.pointer_move(x, y)

    async def pointer_up(self) -> SelectionCommit:
        commit = self.selection.pointer_up()
        if commit.needs_resolution and self.tool == ToolMode.AI:
            await self.resolve_selection()
        return commit

    async def resolve_selection(self) -> Optional[RegionContent]:
        """Crop + OCR the committed selection on the current page."""
        sel = self.selection.selection
        if sel is None or self.document is None:
            return None
        if self.ocr is None:
            self.status.post("OCR unavailable")
            return None
        generation, doc = self._generation, self.document
        self.status.post("Scanning...")
        try:
            region = await resolve_region(
                self.page_raster(), sel, self.ocr,
                page_number=self.current_page,
                pdf_bytes=doc,
                quality=settings.SELECTION_JPEG_QUALITY,
            )
        except RegionError as e:
            logger.warning(f"[SESSION] Region resolution failed: {e}")
            self.status.post("Vision Error")
            return None

        if generation != self._generation or self.selection.selection != sel:
            logger.info("[SESSION] Discarding stale region result")
            return None
        self.region = region
        if region.ocr_error:
            self.status.post("Vision Error")
        else:
            self.status.post("Content Identified" if region.has_ocr_text else "Target Locked")
        return region

    # ── Command / apply cycle ─────────────────────────────────────────────

    @asynccontextmanager
    async def _busy(self):
        if self.is_processing:
            raise SessionBusyError("An edit is already in progress")
        self.is_processing = True
        try:
            yield
        finally:
            self.is_processing = False

    async def run_command(self, command: str) -> EditOutcome:
        """Ask the model for instructions and apply them as one new revision."""
        doc = self._require_document()
        if not command.strip():
            self.status.post("Enter a command")
            return EditOutcome(applied=False)
        if self.synthesizer is None:
            self.status.post("Model unavailable")
            return EditOutcome(applied=False)

        async with self._busy():
            generation = self._generation
            self.status.post("Processing...")
            region = self.region
            result = await self.synthesizer.synthesize(
                command,
                extract_context_text(doc, settings.CONTEXT_PAGE_LIMIT, settings.CONTEXT_CHAR_LIMIT),
                self.page_count,
                selection=self.selection.selection,
                selected_text=region.selected_text if region else None,
                selection_image=region.image if region else None,
            )
            if result.status == SynthesisStatus.PARSE_FAILURE:
                self.status.post("Could not understand the model response")
                return EditOutcome(applied=False, synthesis=result)
            if result.status == SynthesisStatus.ERROR:
                self.status.post("Model unavailable")
                return EditOutcome(applied=False, synthesis=result)
            if not result.instructions:
                self.status.post("No actionable edits")
                return EditOutcome(applied=False, synthesis=result)

            outcome = await self._apply(doc, result.instructions, generation)
            outcome.synthesis = result
            return outcome

    async def apply_instructions(self, instructions: List[EditInstruction]) -> EditOutcome:
        """Apply instructions built outside the model (manual edits)."""
        doc = self._require_document()
        if not instructions:
            self.status.post("No actionable edits")
            return EditOutcome(applied=False)
        async with self._busy():
            return await self._apply(doc, instructions, self._generation)

    async def _apply(self, doc: bytes, instructions: List[EditInstruction], generation: int) -> EditOutcome:
        resolved = [await self._resolve_image(instr) for instr in instructions]
        new_doc, report = await apply_edits_with_report(doc, resolved, self.image_fetcher)

        if generation != self._generation or self.document is not doc:
            logger.info("[SESSION] Document changed while applying; result discarded")
            return EditOutcome(applied=False, instructions=resolved, report=report)

        self.history.push(new_doc)
        self._reset_selection()
        skipped = len(report.skipped)
        msg = f"Applied {report.applied_count} edit(s)"
        if skipped:
            msg += f", {skipped} skipped"
        self.status.post(msg)
        return EditOutcome(applied=True, instructions=resolved, report=report)

    async def _resolve_image(self, instruction: EditInstruction) -> EditInstruction:
        """Generate the image of an image instruction that only carries a prompt."""
        params = instruction.parameters
        if instruction.action not in (ActionKind.GENERATE_IMAGE, ActionKind.ADD_IMAGE):
            return instruction
        if params.image_url or params.image_bytes or not params.image_prompt:
            return instruction
        if self.image_generator is None:
            logger.warning("[SESSION] No image generator configured")
            return instruction
        self.status.post("Generating image...")
        try:
            url = await self.image_generator(params.image_prompt)
        except Exception as e:
            logger.error(f"[SESSION] Image generation failed for '{params.image_prompt[:60]}': {e}")
            return instruction
        if not url:
            return instruction
        resolved = instruction.model_copy(deep=True)
        resolved.parameters.image_url = url
        return resolved

    # ── Manual edits from the current selection ───────────────────────────

    def _selection_box(self) -> Tuple[Tuple[float, float, float, float], SelectionAreaModel]:
        """Bottom-up (x, y, width, height) of the selection, plus the selection itself."""
        sel = self.selection.selection
        if sel is None or sel.is_empty:
            raise RegionError("Draw a selection first")
        return selection_to_document_box(sel), SelectionAreaModel.from_area(sel.normalized())

    def manual_text_instruction(self, text: str, font_size: float = 18, color: str = "#000000") -> EditInstruction:
        (x, y, _w, _h), area = self._selection_box()
        return EditInstruction(
            action=ActionKind.ADD_TEXT,
            page_number=self.current_page,
            explanation="Manual text",
            parameters=EditParameters(
                new_text=text, x=x, y=y, font_size=font_size, color=color, selection_area=area,
            ),
        )

    def manual_shape_instruction(self, shape: ShapeType = ShapeType.RECT) -> EditInstruction:
        (x, y, w, h), area = self._selection_box()
        return EditInstruction(
            action=ActionKind.ADD_SHAPE,
            page_number=self.current_page,
            explanation="Manual shape",
            parameters=EditParameters(
                shape_type=shape.value, x=x, y=y, width=w, height=h, selection_area=area,
            ),
        )

    def manual_image_instruction(
        self,
        image_bytes: Optional[bytes] = None,
        image_url: Optional[str] = None,
    ) -> EditInstruction:
        (x, y, w, h), area = self._selection_box()
        return EditInstruction(
            action=ActionKind.ADD_IMAGE,
            page_number=self.current_page,
            explanation="Manual image",
            parameters=EditParameters(
                image_bytes=image_bytes, image_url=image_url,
                x=x, y=y, width=w, height=h, selection_area=area,
            ),
        )

    # ── History / export ──────────────────────────────────────────────────

    def undo(self) -> bool:
        if self.history.undo() is None:
            return False
        self._reset_selection()
        self.status.post("Undone")
        return True

    def redo(self) -> bool:
        if self.history.redo() is None:
            return False
        self._reset_selection()
        self.status.post("Redone")
        return True

    def export(self) -> Tuple[str, bytes]:
        return export_filename(self.name), self._require_document()
