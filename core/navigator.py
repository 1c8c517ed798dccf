"""
View Navigator for Mandala Chart.

State machine over the overview (MAIN) and a focused sub-goal (SUB(i)).

    MAIN --zoom_in(pos != 4)--> SUB(idx)
    SUB  --back_to_main()-----> MAIN

select_cell and clear_current_view never change the mode. Events that are
not valid in the current state are ignored and return False.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from core.grid import is_center, is_valid_position, position_to_index
from core.logger import get_logger
from core.models import CellPath, Selection, ViewMode, ViewState

logger = get_logger("navigator")


class ClearScope(str, Enum):
    CHART = "chart"      # 清空整张图
    SUBTREE = "subtree"  # 清空一个子目标及其任务


@dataclass(frozen=True)
class ClearRequest:
    scope: ClearScope
    sub_index: Optional[int] = None


class ViewNavigator:
    """视图状态机；初始为 MAIN 且无选中。"""

    def __init__(self, state: Optional[ViewState] = None):
        self.state = state or ViewState()

    @property
    def mode(self) -> ViewMode:
        return self.state.mode

    @property
    def focus(self) -> Optional[int]:
        return self.state.focused_sub_goal_index

    @property
    def selection(self) -> Optional[Selection]:
        return self.state.selection

    def zoom_in(self, pos: int) -> bool:
        if self.state.mode != ViewMode.MAIN or not is_valid_position(pos) or is_center(pos):
            logger.debug("zoom_in(%r) ignored in %s", pos, self.state.mode.value)
            return False
        idx = position_to_index(pos)
        self.state = ViewState(mode=ViewMode.SUB, focused_sub_goal_index=idx)
        logger.info("Zoomed into sub-goal %d", idx)
        return True

    def back_to_main(self) -> bool:
        if self.state.mode != ViewMode.SUB:
            logger.debug("back_to_main ignored in MAIN")
            return False
        self.state = ViewState()
        return True

    def select_cell(self, pos: int) -> bool:
        if not is_valid_position(pos):
            logger.warning("select_cell ignored for invalid position %r", pos)
            return False
        idx = position_to_index(pos)
        if self.state.mode == ViewMode.MAIN:
            selection = CellPath.main() if idx is None else CellPath.sub(idx)
        else:
            focus = self.state.focused_sub_goal_index
            selection = CellPath.sub(focus) if idx is None else CellPath.task(focus, idx)
        self.state = replace(self.state, selection=selection)
        return True

    def clear_selection(self) -> None:
        if self.state.selection is not None:
            self.state = replace(self.state, selection=None)

    def activate_cell(self, pos: int) -> bool:
        """双击：外圈格进入子目标，SUB 中心格返回总览。"""
        if self.state.mode == ViewMode.MAIN:
            return self.zoom_in(pos)
        if is_center(pos):
            return self.back_to_main()
        return False

    def clear_current_view(self) -> ClearRequest:
        """Describe what "clear" means in the current view; the caller confirms and applies it."""
        if self.state.mode == ViewMode.MAIN:
            return ClearRequest(scope=ClearScope.CHART)
        return ClearRequest(scope=ClearScope.SUBTREE, sub_index=self.state.focused_sub_goal_index)

    def reset(self) -> None:
        self.state = ViewState()
