# File: pdf_architect/api/endpoints/documents.py
"""
Document editing API: upload, page rendering, selection, AI commands,
manual edits, undo/redo and download.
"""

import base64
import binascii
import io
import logging
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response

from pdf_architect.core.config import settings
from pdf_architect.core.errors import (
    DocumentLoadError,
    NoDocumentError,
    RegionError,
    SessionBusyError,
)
from pdf_architect.schemas.edit import SelectionAreaModel, ShapeType
from pdf_architect.schemas.editor import (
    CommandRequest,
    DocumentMetadata,
    EditResponse,
    HistoryState,
    ManualEditRequest,
    ManualImageRequest,
    ManualShapeRequest,
    ManualTextRequest,
    PageRequest,
    PointerRequest,
    RegionState,
    SessionState,
    ToolRequest,
)
from pdf_architect.services.editor_session import EditOutcome, EditorSession, ToolMode
from pdf_architect.services.session_store import SessionStore, get_session_store
from pdf_architect.utils.coordinates import PointerEvent, SurfaceBounds
from pdf_architect.utils.pdf_document import render_page

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_session(session_id: str, store: SessionStore) -> EditorSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Document session not found")
    return session


def _state(session_id: str, session: EditorSession) -> SessionState:
    sel = session.selection.selection
    region = session.region
    history = session.history
    return SessionState(
        session_id=session_id,
        name=session.name,
        page_count=session.page_count,
        current_page=session.current_page,
        tool=session.tool.value,
        selection_state=session.selection.state.value,
        selection=SelectionAreaModel.from_area(sel) if sel else None,
        region=RegionState(
            page_number=region.page_number,
            selected_text=region.selected_text,
            ocr_text=region.ocr_text,
            layout_text=region.layout_text,
            ocr_error=region.ocr_error,
        ) if region else None,
        history=HistoryState(
            length=len(history),
            cursor=history.cursor,
            can_undo=history.can_undo,
            can_redo=history.can_redo,
        ),
        is_processing=session.is_processing,
        status=session.status.message,
    )


def _edit_response(session_id: str, session: EditorSession, outcome: EditOutcome) -> EditResponse:
    report = outcome.report
    return EditResponse(
        applied=outcome.applied,
        synthesis_status=outcome.synthesis.status.value if outcome.synthesis else None,
        instructions=outcome.instructions,
        applied_indices=report.applied if report else [],
        skipped=[f"#{i}: {reason}" for i, reason in report.skipped] if report else [],
        state=_state(session_id, session),
    )


@router.post("/", response_model=DocumentMetadata)
async def upload_document(
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_session_store),
) -> Any:
    """Open an uploaded PDF in a new editing session."""
    data = await file.read()
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")

    session_id, session = store.create()
    try:
        page_count = session.load_document(file.filename or "document.pdf", data)
    except DocumentLoadError as e:
        store.discard(session_id)
        logger.warning(f"[API] Rejected upload '{file.filename}': {e}")
        raise HTTPException(status_code=400, detail=f"Upload Error: {e}")

    return DocumentMetadata(
        session_id=session_id,
        name=session.name,
        page_count=page_count,
        file_size=session.file_size,
    )


@router.get("/{session_id}", response_model=SessionState)
async def get_state(session_id: str, store: SessionStore = Depends(get_session_store)) -> Any:
    return _state(session_id, _get_session(session_id, store))


@router.get("/{session_id}/pages/{page_number}")
async def get_page_image(
    session_id: str,
    page_number: int,
    scale: float = Query(settings.RENDER_SCALE, gt=0, le=8),
    store: SessionStore = Depends(get_session_store),
):
    """PNG render of one page of the current revision."""
    session = _get_session(session_id, store)
    if session.document is None:
        raise HTTPException(status_code=400, detail="No document loaded")
    if not 1 <= page_number <= session.page_count:
        raise HTTPException(status_code=404, detail="Page out of range")
    image = render_page(session.document, page_number, scale)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return Response(content=buf.getvalue(), media_type="image/png")


@router.put("/{session_id}/page", response_model=SessionState)
async def set_page(
    session_id: str,
    request: PageRequest,
    store: SessionStore = Depends(get_session_store),
) -> Any:
    session = _get_session(session_id, store)
    try:
        session.set_page(request.page_number)
    except NoDocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _state(session_id, session)


@router.put("/{session_id}/tool", response_model=SessionState)
async def set_tool(
    session_id: str,
    request: ToolRequest,
    store: SessionStore = Depends(get_session_store),
) -> Any:
    session = _get_session(session_id, store)
    session.set_tool(ToolMode(request.tool))
    return _state(session_id, session)


@router.post("/{session_id}/pointer", response_model=SessionState)
async def pointer_event(
    session_id: str,
    request: PointerRequest,
    store: SessionStore = Depends(get_session_store),
) -> Any:
    """Feed one pointer event into the selection state machine."""
    session = _get_session(session_id, store)
    event = PointerEvent(
        client_x=request.client_x,
        client_y=request.client_y,
        touches=request.touches,
    )
    bounds = None
    if request.surface is not None:
        bounds = SurfaceBounds(
            left=request.surface.left,
            top=request.surface.top,
            width=request.surface.width,
            height=request.surface.height,
        )

    if request.phase == "down":
        session.pointer_down(event, bounds)
    elif request.phase == "move":
        session.pointer_move(event, bounds)
    else:
        await session.pointer_up()
    return _state(session_id, session)


@router.post("/{session_id}/command", response_model=EditResponse)
async def run_command(
    session_id: str,
    request: CommandRequest,
    store: SessionStore = Depends(get_session_store),
) -> Any:
    """Interpret a natural-language command and apply the resulting edits."""
    session = _get_session(session_id, store)
    try:
        outcome = await session.run_command(request.command)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NoDocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _edit_response(session_id, session, outcome)


async def _apply(session_id: str, session: EditorSession, instructions) -> EditResponse:
    try:
        outcome = await session.apply_instructions(instructions)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NoDocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _edit_response(session_id, session, outcome)


@router.post("/{session_id}/edits", response_model=EditResponse)
async def apply_edits(
    session_id: str,
    request: ManualEditRequest,
    store: SessionStore = Depends(get_session_store),
) -> Any:
    """Apply explicit edit instructions."""
    session = _get_session(session_id, store)
    return await _apply(session_id, session, request.instructions)


@router.post("/{session_id}/manual-text", response_model=EditResponse)
async def add_manual_text(
    session_id: str,
    request: ManualTextRequest,
    store: SessionStore = Depends(get_session_store),
) -> Any:
    session = _get_session(session_id, store)
    try:
        instruction = session.manual_text_instruction(request.text, request.font_size, request.color)
    except RegionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await _apply(session_id, session, [instruction])


@router.post("/{session_id}/manual-shape", response_model=EditResponse)
async def add_manual_shape(
    session_id: str,
    request: ManualShapeRequest,
    store: SessionStore = Depends(get_session_store),
) -> Any:
    session = _get_session(session_id, store)
    try:
        shape = ShapeType(request.shape_type)
        instruction = session.manual_shape_instruction(shape)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown shape type: {request.shape_type}")
    except RegionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await _apply(session_id, session, [instruction])


@router.post("/{session_id}/manual-image", response_model=EditResponse)
async def add_manual_image(
    session_id: str,
    request: ManualImageRequest,
    store: SessionStore = Depends(get_session_store),
) -> Any:
    session = _get_session(session_id, store)
    image_bytes = None
    if request.image_base64:
        payload = request.image_base64.partition(",")[2] if request.image_base64.startswith("data:") else request.image_base64
        try:
            image_bytes = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail="image_base64 is not valid base64")
    if not image_bytes and not request.image_url:
        raise HTTPException(status_code=400, detail="Provide image_url or image_base64")
    try:
        instruction = session.manual_image_instruction(image_bytes=image_bytes, image_url=request.image_url)
    except RegionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await _apply(session_id, session, [instruction])


@router.post("/{session_id}/undo", response_model=SessionState)
async def undo(session_id: str, store: SessionStore = Depends(get_session_store)) -> Any:
    session = _get_session(session_id, store)
    session.undo()
    return _state(session_id, session)


@router.post("/{session_id}/redo", response_model=SessionState)
async def redo(session_id: str, store: SessionStore = Depends(get_session_store)) -> Any:
    session = _get_session(session_id, store)
    session.redo()
    return _state(session_id, session)


@router.get("/{session_id}/download")
async def download_document(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Current revision as a PDF attachment."""
    session = _get_session(session_id, store)
    try:
        filename, data = session.export()
    except NoDocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
