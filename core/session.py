"""
Mandala Session: the top-level controller owning all per-session state.

Holds the chart, view navigator, side panels, chat history and display
preferences, and publishes a ChartEvent on every change. Model operations are
synchronous; only assistant and media calls are awaited, with the blocking
adapter call pushed to a worker thread.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from uuid import uuid4

from core import chart_model
from core.assistant import ChatAssistant, SuggestionService, format_transcript
from core.config_manager import FONT_SIZES, SystemConfig, config as default_config
from core.events import (
    CHART_CHANGED,
    CHART_REPLACED,
    CHAT_UPDATED,
    NOTICE,
    PANELS_CHANGED,
    VIEW_CHANGED,
    ChangeNotifier,
)
from core.exceptions import ConfirmationError
from core.import_export import validate
from core.logger import get_logger
from core.media_service import BaseMediaService, MediaResult, create_media_service
from core.models import EMPTY_CELL, Cell, CellPath, Chart, ChatMessage, ViewMode, ViewState
from core.navigator import ClearScope, ViewNavigator
from core.panels import Panel, PanelController
from core.progress import overall_progress, progress_report

logger = get_logger("session")


class PendingKind(str, Enum):
    CLEAR_CHART = "clear_chart"
    CLEAR_SUBTREE = "clear_subtree"
    IMPORT = "import"


CONFIRM_MESSAGES = {
    PendingKind.CLEAR_CHART: "確定要清除所有內容（包含所有子目標與任務）嗎？此動作無法復原。",
    PendingKind.CLEAR_SUBTREE: "確定要清除此頁面（此子目標及其所有任務）的內容嗎？",
    PendingKind.IMPORT: "匯入將會覆蓋目前的內容，確定要繼續嗎？",
}


@dataclass
class PendingAction:
    """破坏性操作：在 confirm() 之前不会修改图表。"""
    kind: PendingKind
    sub_index: Optional[int] = None
    incoming: Optional[Chart] = None
    id: str = field(default_factory=lambda: f"act_{uuid4().hex[:10]}")

    @property
    def message(self) -> str:
        return CONFIRM_MESSAGES[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "subIndex": self.sub_index,
            "message": self.message,
        }


@dataclass
class SuggestionOutcome:
    ideas: List[str] = field(default_factory=list)
    filled: int = 0
    stale: bool = False
    notice: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.filled > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ideas": list(self.ideas),
            "filled": self.filled,
            "stale": self.stale,
            "notice": self.notice,
        }


ViewContext = Tuple[ViewMode, Optional[int]]
NO_SELECTION_NOTICE = "請先選擇一個格子以使用創意工具"


class MandalaSession:
    """One user's in-memory planning session."""

    def __init__(
        self,
        suggestions: Optional[SuggestionService] = None,
        assistant: Optional[ChatAssistant] = None,
        media: Optional[BaseMediaService] = None,
        cfg: Optional[SystemConfig] = None,
    ):
        self.cfg = cfg or default_config
        self.suggestions = suggestions or SuggestionService(cfg=self.cfg)
        self.assistant = assistant or ChatAssistant()
        self._media = media

        self.chart: Chart = chart_model.create_empty()
        self.navigator = ViewNavigator()
        self.panels = PanelController()
        self.notifier = ChangeNotifier()
        self.chat_messages: List[ChatMessage] = [ChatMessage(role="model", text=self.cfg.CHAT_GREETING)]
        self.theme = self.cfg.DEFAULT_THEME
        self.font_size = self.cfg.DEFAULT_FONT_SIZE
        self.pending: Optional[PendingAction] = None
        self.is_suggesting = False

    @property
    def media(self) -> BaseMediaService:
        if self._media is None:
            self._media = create_media_service()
        return self._media

    @property
    def view(self) -> ViewState:
        return self.navigator.state

    def _view_context(self) -> ViewContext:
        return self.view.mode, self.view.focused_sub_goal_index

    # --- Publishing ---

    def _set_chart(self, chart: Chart, event_type: str = CHART_CHANGED, **payload) -> None:
        if chart is self.chart:
            return
        self.chart = chart
        payload.setdefault("overallProgress", overall_progress(chart))
        self.notifier.publish(event_type, payload)

    def _view_changed(self) -> None:
        self.notifier.publish(VIEW_CHANGED, self.view.to_dict())

    def _notice(self, message: str, level: str = "info") -> str:
        self.notifier.publish(NOTICE, {"message": message, "level": level})
        return message

    # --- Cells ---

    def cell_at(self, pos: int) -> Cell:
        return chart_model.get_cell(self.chart, self.view, pos)

    def edit_cell(self, pos: int, patch: Mapping[str, Any]) -> Chart:
        path = chart_model.resolve_target(self.view, pos)
        if path is None:
            return self.chart
        self._set_chart(chart_model.update_cell_at(self.chart, path, patch), path=path.to_dict())
        return self.chart

    def update_sub_goal(self, index: int, patch: Mapping[str, Any]) -> Chart:
        path = CellPath.sub(index)
        self._set_chart(chart_model.update_cell_at(self.chart, path, patch), path=path.to_dict())
        return self.chart

    def update_task(self, sub_index: int, index: int, patch: Mapping[str, Any]) -> Chart:
        path = CellPath.task(sub_index, index)
        self._set_chart(chart_model.update_cell_at(self.chart, path, patch), path=path.to_dict())
        return self.chart

    def selected_cell(self) -> Cell:
        selection = self.view.selection
        if selection is None:
            return EMPTY_CELL
        return chart_model.get_cell_at(self.chart, selection)

    def update_selected_cell(self, patch: Mapping[str, Any]) -> Chart:
        selection = self.view.selection
        if selection is None:
            return self.chart
        self._set_chart(chart_model.update_cell_at(self.chart, selection, patch), path=selection.to_dict())
        return self.chart

    # --- Navigation ---

    def select(self, pos: int) -> bool:
        changed = self.navigator.select_cell(pos)
        if changed:
            self._view_changed()
        return changed

    def zoom_in(self, pos: int) -> bool:
        changed = self.navigator.zoom_in(pos)
        if changed:
            self._view_changed()
        return changed

    def back_to_main(self) -> bool:
        changed = self.navigator.back_to_main()
        if changed:
            self._view_changed()
        return changed

    def activate(self, pos: int) -> bool:
        changed = self.navigator.activate_cell(pos)
        if changed:
            self._view_changed()
        return changed

    # --- Destructive actions (confirmation gate) ---

    def request_clear(self) -> PendingAction:
        request = self.navigator.clear_current_view()
        if request.scope == ClearScope.CHART:
            action = PendingAction(kind=PendingKind.CLEAR_CHART)
        else:
            action = PendingAction(kind=PendingKind.CLEAR_SUBTREE, sub_index=request.sub_index)
        self.pending = action
        return action

    def request_import(self, raw: Union[str, bytes, Mapping[str, Any]]) -> PendingAction:
        """
        Validate ``raw`` and stage it for import.

        Raises:
            ChartValidationError: the chart stays untouched and nothing is staged.
        """
        incoming = validate(raw)
        self.pending = PendingAction(kind=PendingKind.IMPORT, incoming=incoming)
        return self.pending

    def cancel(self) -> None:
        self.pending = None

    def confirm(self, action_id: Optional[str] = None) -> Chart:
        """
        Apply the pending destructive action.

        Raises:
            ConfirmationError: nothing pending, or ``action_id`` is not the pending one.
        """
        action = self.pending
        if action is None:
            raise ConfirmationError(action_id)
        if action_id is not None and action_id != action.id:
            raise ConfirmationError(action_id)
        self.pending = None

        if action.kind == PendingKind.CLEAR_CHART:
            self._set_chart(chart_model.clear_chart(), scope=ClearScope.CHART.value)
            self.navigator.reset()
        elif action.kind == PendingKind.CLEAR_SUBTREE:
            self._set_chart(
                chart_model.clear_subtree(self.chart, action.sub_index),
                scope=ClearScope.SUBTREE.value,
                subIndex=action.sub_index,
            )
            self.navigator.clear_selection()
        else:
            self._set_chart(chart_model.replace_all(self.chart, action.incoming), event_type=CHART_REPLACED)
            self.navigator.reset()

        logger.info("Confirmed %s", action.kind.value)
        self._view_changed()
        return self.chart

    # --- Panels & preferences ---

    def toggle_panel(self, panel: Panel) -> bool:
        """Raises PanelRejectedError when media is opened with no selection."""
        is_open = self.panels.toggle(panel, has_selection=self.view.selection is not None)
        self.notifier.publish(PANELS_CHANGED, self.panels.as_dict())
        return is_open

    def close_panels(self) -> None:
        self.panels.close_all()
        self.notifier.publish(PANELS_CHANGED, self.panels.as_dict())

    def toggle_theme(self) -> str:
        self.theme = "dark" if self.theme == "light" else "light"
        return self.theme

    def cycle_font_size(self) -> str:
        idx = FONT_SIZES.index(self.font_size) if self.font_size in FONT_SIZES else 0
        self.font_size = FONT_SIZES[(idx + 1) % len(FONT_SIZES)]
        return self.font_size

    # --- Assistant ---

    def transcript(self) -> str:
        return format_transcript(self.chat_messages, self.cfg.CHAT_CONTEXT_MESSAGES)

    async def suggest(self) -> SuggestionOutcome:
        """
        Ask the assistant for ideas and fill the empty cells of the current view.

        The request is tagged with the view at send time; if the view has
        changed by the time the response arrives, the result is discarded
        (DISCARD_STALE_SUGGESTIONS) or applied to the original bucket.
        """
        if self.is_suggesting:
            return SuggestionOutcome(notice=self._notice("AI 正在思考中，請稍候。"))

        sent_view = self.view
        sent_context = self._view_context()
        transcript = self.transcript()
        enough_chat = len(transcript) >= self.cfg.MIN_CHAT_CONTEXT_CHARS
        main_text = self.chart.main_goal.text

        if sent_view.mode == ViewMode.MAIN:
            if not main_text and not enough_chat:
                return SuggestionOutcome(notice=self._notice("請先輸入核心目標，或先與 AI 助手討論您的想法。", "warning"))
            sub_text = None
        else:
            sub_text = self.chart.sub_goals[sent_view.focused_sub_goal_index].text
            if not sub_text and not enough_chat:
                return SuggestionOutcome(notice=self._notice("請確保子目標有文字內容，或先與 AI 助手討論。", "warning"))
            sub_text = sub_text or ""

        existing = chart_model.bucket_texts(self.chart, sent_view)
        self.is_suggesting = True
        try:
            result = await asyncio.to_thread(
                self.suggestions.suggest, main_text, sub_text, existing, transcript
            )
        finally:
            self.is_suggesting = False

        if not result.success:
            return SuggestionOutcome(notice=self._notice("AI 建議失敗。請檢查 API 金鑰或設定。", "error"))

        if self._view_context() != sent_context and self.cfg.DISCARD_STALE_SUGGESTIONS:
            logger.info("Discarding stale suggestions for %s", sent_context)
            return SuggestionOutcome(
                ideas=result.ideas,
                stale=True,
                notice=self._notice("畫面已切換，已捨棄先前的 AI 建議。"),
            )

        before = self.chart
        after = chart_model.apply_suggestions(before, sent_view, result.ideas)
        filled = sum(
            1
            for path in chart_model.bucket_paths(sent_view)
            if chart_model.get_cell_at(before, path).text != chart_model.get_cell_at(after, path).text
        )
        self._set_chart(after, source="suggestion", filled=filled)
        return SuggestionOutcome(ideas=result.ideas, filled=filled)

    async def send_chat(self, message: str) -> Optional[ChatMessage]:
        text = (message or "").strip()
        if not text:
            return None
        history = list(self.chat_messages)
        self.chat_messages.append(ChatMessage(role="user", text=text))
        self.notifier.publish(CHAT_UPDATED, {"count": len(self.chat_messages)})

        try:
            reply = await asyncio.to_thread(self.assistant.reply, history, text)
        except Exception:
            # 没有回复的用户消息不留在记录里
            self.chat_messages = history
            self.notifier.publish(CHAT_UPDATED, {"count": len(self.chat_messages)})
            raise
        self.chat_messages.append(reply)
        self.notifier.publish(CHAT_UPDATED, {"count": len(self.chat_messages)})
        return reply

    # --- Media ---

    def _no_selection(self) -> MediaResult:
        return MediaResult(error=self._notice(NO_SELECTION_NOTICE, "warning"))

    def _apply_media(self, path: CellPath, result: MediaResult) -> MediaResult:
        if result.success and result.ref:
            self._set_chart(
                chart_model.update_cell_at(self.chart, path, {"image_ref": result.ref}),
                path=path.to_dict(),
                source="media",
            )
        elif not result.success:
            self._notice(result.error or "圖片服務失敗", "error")
        return result

    async def generate_image(self, prompt: str = "", aspect_ratio: Optional[str] = None) -> MediaResult:
        path = self.view.selection
        if path is None:
            return self._no_selection()
        cell = chart_model.get_cell_at(self.chart, path)
        full_prompt = prompt or cell.text or self.cfg.DEFAULT_IMAGE_PROMPT
        result = await asyncio.to_thread(
            self.media.generate_image, full_prompt, aspect_ratio or self.cfg.DEFAULT_ASPECT_RATIO
        )
        return self._apply_media(path, result)

    async def edit_image(self, prompt: str) -> MediaResult:
        path = self.view.selection
        if path is None:
            return self._no_selection()
        cell = chart_model.get_cell_at(self.chart, path)
        if not cell.image_ref:
            return MediaResult(error=self._notice("此格子尚未有圖片", "warning"))
        result = await asyncio.to_thread(self.media.edit_image, cell.image_ref, prompt)
        return self._apply_media(path, result)

    async def analyze_image(self, prompt: str = "") -> MediaResult:
        path = self.view.selection
        if path is None:
            return self._no_selection()
        cell = chart_model.get_cell_at(self.chart, path)
        if not cell.image_ref:
            return MediaResult(error=self._notice("此格子尚未有圖片", "warning"))
        return await asyncio.to_thread(
            self.media.analyze_image, cell.image_ref, prompt or self.cfg.DEFAULT_ANALYZE_PROMPT
        )

    # --- Snapshot ---

    def snapshot(self) -> Dict[str, Any]:
        return {
            "chart": self.chart.to_dict(),
            "view": self.view.to_dict(),
            "panels": self.panels.as_dict(),
            "progress": progress_report(self.chart).to_dict(),
            "pending": self.pending.to_dict() if self.pending else None,
            "theme": self.theme,
            "fontSize": self.font_size,
            "isSuggesting": self.is_suggesting,
        }
