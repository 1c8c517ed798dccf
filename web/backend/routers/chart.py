from typing import Annotated, Any, Dict, Literal, Optional
from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Path as PathParam
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel, Field

from core.exceptions import (
    ChartValidationError,
    ConfigError,
    ConfirmationError,
    LLMError,
    MandalaError,
    PanelRejectedError,
)
from core.import_export import export_filename, export_json, export_text
from core.logger import get_logger
from core.media_service import MediaResult
from core.panels import Panel
from core.progress import progress_report
from core.session import MandalaSession

router = APIRouter()
logger = get_logger("api.chart")

GridPos = Annotated[int, PathParam(ge=0, le=8)]
OuterIndex = Annotated[int, PathParam(ge=0, le=7)]

# 单会话内存状态（进程级）
_session: Optional[MandalaSession] = None


def get_session() -> MandalaSession:
    global _session
    if _session is None:
        _session = MandalaSession()
    return _session


def _http_error(e: MandalaError) -> HTTPException:
    if isinstance(e, ChartValidationError):
        status = 400
    elif isinstance(e, (ConfirmationError, PanelRejectedError)):
        status = 409
    elif isinstance(e, (LLMError, ConfigError)):
        status = 502
    else:
        status = 500
    logger.warning("Request rejected (%d): %s", status, e.message)
    return HTTPException(status_code=status, detail=e.get_user_message())


def _attachment(filename: str) -> Dict[str, str]:
    # 文件名可能含中文，按 RFC 5987 编码
    return {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}


class CellPatchRequest(BaseModel):
    text: Optional[str] = None
    notes: Optional[str] = None
    image_ref: Optional[str] = Field(default=None, alias="imageRef")
    video_ref: Optional[str] = Field(default=None, alias="videoRef")
    is_completed: Optional[bool] = Field(default=None, alias="isCompleted")
    frequency: Optional[Literal["one-time", "daily", "weekly"]] = None

    model_config = {"populate_by_name": True}

    def patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ConfirmRequest(BaseModel):
    action_id: Optional[str] = None


class ChatRequest(BaseModel):
    message: str


class MediaRequest(BaseModel):
    prompt: str = ""
    aspect_ratio: Optional[str] = None


@router.get("/state")
async def get_state():
    return get_session().snapshot()


@router.get("/cells/{pos}")
async def get_cell(pos: GridPos):
    return get_session().cell_at(pos).to_dict()


@router.patch("/cells/{pos}")
async def patch_cell(req: CellPatchRequest, pos: GridPos):
    session = get_session()
    try:
        session.edit_cell(pos, req.patch())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.snapshot()


@router.patch("/sub-goals/{index}")
async def patch_sub_goal(req: CellPatchRequest, index: OuterIndex):
    session = get_session()
    try:
        session.update_sub_goal(index, req.patch())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.snapshot()


@router.patch("/tasks/{sub_index}/{index}")
async def patch_task(req: CellPatchRequest, sub_index: OuterIndex, index: OuterIndex):
    session = get_session()
    try:
        session.update_task(sub_index, index, req.patch())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.snapshot()


@router.post("/select/{pos}")
async def select_cell(pos: GridPos):
    session = get_session()
    session.select(pos)
    return {"view": session.view.to_dict()}


@router.post("/zoom/{pos}")
async def zoom_in(pos: GridPos):
    session = get_session()
    changed = session.zoom_in(pos)
    return {"changed": changed, "view": session.view.to_dict()}


@router.post("/back")
async def back_to_main():
    session = get_session()
    changed = session.back_to_main()
    return {"changed": changed, "view": session.view.to_dict()}


@router.post("/activate/{pos}")
async def activate_cell(pos: GridPos):
    session = get_session()
    changed = session.activate(pos)
    return {"changed": changed, "view": session.view.to_dict()}


@router.post("/clear")
async def request_clear():
    """Stage a clear of the current view; call /confirm to apply."""
    return get_session().request_clear().to_dict()


@router.post("/import")
async def request_import(payload: Dict[str, Any]):
    """Validate an uploaded chart and stage it; call /confirm to apply."""
    try:
        action = get_session().request_import(payload)
    except ChartValidationError as e:
        raise _http_error(e)
    return action.to_dict()


@router.post("/confirm")
async def confirm_action(req: ConfirmRequest):
    session = get_session()
    try:
        session.confirm(req.action_id)
    except ConfirmationError as e:
        raise _http_error(e)
    return session.snapshot()


@router.post("/cancel")
async def cancel_action():
    get_session().cancel()
    return {"pending": None}


@router.get("/export/json")
async def download_json():
    chart = get_session().chart
    return Response(
        content=export_json(chart),
        media_type="application/json",
        headers=_attachment(export_filename(chart, "json")),
    )


@router.get("/export/text")
async def download_text():
    chart = get_session().chart
    return PlainTextResponse(
        export_text(chart),
        headers=_attachment(export_filename(chart, "txt")),
    )


@router.get("/progress")
async def get_progress():
    return progress_report(get_session().chart).to_dict()


@router.post("/panels/{panel}/toggle")
async def toggle_panel(panel: Panel):
    session = get_session()
    try:
        is_open = session.toggle_panel(panel)
    except PanelRejectedError as e:
        raise _http_error(e)
    return {"open": is_open, "panels": session.panels.as_dict()}


@router.post("/panels/close")
async def close_panels():
    session = get_session()
    session.close_panels()
    return {"panels": session.panels.as_dict()}


@router.post("/preferences/theme")
async def toggle_theme():
    return {"theme": get_session().toggle_theme()}


@router.post("/preferences/font-size")
async def cycle_font_size():
    return {"fontSize": get_session().cycle_font_size()}


async def _call_service(coro):
    """Await a session call that reaches a model; config or model failures become 502."""
    try:
        return await coro
    except MandalaError as e:
        raise _http_error(e)


@router.post("/suggest")
async def suggest():
    session = get_session()
    outcome = await _call_service(session.suggest())
    return {"outcome": outcome.to_dict(), "chart": session.chart.to_dict()}


@router.post("/chat")
async def chat(req: ChatRequest):
    session = get_session()
    reply = await _call_service(session.send_chat(req.message))
    if reply is None:
        raise HTTPException(status_code=400, detail="message must not be empty")
    return {
        "reply": reply.to_dict(),
        "messages": [m.to_dict() for m in session.chat_messages],
    }


def _media_payload(session: MandalaSession, result: MediaResult) -> Dict[str, Any]:
    return {
        "success": result.success,
        "ref": result.ref,
        "text": result.text,
        "error": result.error,
        "cell": session.selected_cell().to_dict(),
    }


@router.post("/media/generate")
async def generate_image(req: MediaRequest):
    session = get_session()
    result = await _call_service(session.generate_image(req.prompt, req.aspect_ratio))
    return _media_payload(session, result)


@router.post("/media/edit")
async def edit_image(req: MediaRequest):
    session = get_session()
    result = await _call_service(session.edit_image(req.prompt))
    return _media_payload(session, result)


@router.post("/media/analyze")
async def analyze_image(req: MediaRequest):
    session = get_session()
    result = await _call_service(session.analyze_image(req.prompt))
    return _media_payload(session, result)
