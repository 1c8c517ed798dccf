"""
Chart Model for Mandala Chart.

Value-returning operations over the canonical Chart: every function returns a
new Chart (or reads the given one), callers never observe in-place mutation.
"""
from dataclasses import replace
from typing import Iterable, List, Mapping, Optional, Any

from core.grid import OUTER_SLOTS, is_valid_index, is_valid_position, position_to_index
from core.logger import get_logger
from core.models import (
    EMPTY_CELL,
    MAIN_GOAL_ID,
    Cell,
    CellKind,
    CellPath,
    Chart,
    ViewMode,
    ViewState,
    sub_goal_id,
    task_id,
)
from core.progress import recompute_sub_goal

logger = get_logger("chart_model")


def blank_sub_goal(index: int) -> Cell:
    return Cell(id=sub_goal_id(index))


def blank_tasks(sub_index: int) -> tuple:
    return tuple(Cell(id=task_id(sub_index, j)) for j in range(OUTER_SLOTS))


def create_empty() -> Chart:
    """固定形状、确定性 id、全部文字为空。"""
    return Chart(
        main_goal=Cell(id=MAIN_GOAL_ID),
        sub_goals=tuple(blank_sub_goal(i) for i in range(OUTER_SLOTS)),
        tasks=tuple(blank_tasks(i) for i in range(OUTER_SLOTS)),
    )


def clear_chart() -> Chart:
    return create_empty()


# --- Resolution ---

def resolve_target(view: ViewState, pos: int) -> Optional[CellPath]:
    """
    Resolve a grid position to a cell path under the given view.

    Returns None when the position does not resolve (invalid position, or a
    SUB view without focus).
    """
    if not is_valid_position(pos):
        logger.warning("Ignoring invalid grid position %r", pos)
        return None

    idx = position_to_index(pos)
    if view.mode == ViewMode.MAIN:
        return CellPath.main() if idx is None else CellPath.sub(idx)

    focus = view.focused_sub_goal_index
    if not is_valid_index(focus):
        return None
    return CellPath.sub(focus) if idx is None else CellPath.task(focus, idx)


def get_cell_at(chart: Chart, path: CellPath) -> Cell:
    if path.kind == CellKind.MAIN:
        return chart.main_goal
    if path.kind == CellKind.SUB:
        return chart.sub_goals[path.index]
    return chart.tasks[path.sub_index][path.index]


def get_cell(chart: Chart, view: ViewState, pos: int) -> Cell:
    path = resolve_target(view, pos)
    if path is None:
        return EMPTY_CELL
    return get_cell_at(chart, path)


# --- Updates ---

def _with_sub_goal(chart: Chart, index: int, cell: Cell) -> Chart:
    sub_goals = list(chart.sub_goals)
    sub_goals[index] = cell
    return replace(chart, sub_goals=tuple(sub_goals))


def _with_task_group(chart: Chart, sub_index: int, group: Iterable[Cell]) -> Chart:
    tasks = list(chart.tasks)
    tasks[sub_index] = tuple(group)
    return replace(chart, tasks=tuple(tasks))


def update_cell_at(chart: Chart, path: CellPath, patch: Mapping[str, Any]) -> Chart:
    """
    Apply ``patch`` to the cell at ``path``.

    Task edits recompute the owning sub-goal's progress in the same step.
    """
    if path.kind == CellKind.MAIN:
        return replace(chart, main_goal=chart.main_goal.apply_patch(patch))

    if path.kind == CellKind.SUB:
        updated = chart.sub_goals[path.index].apply_patch(patch)
        return _with_sub_goal(chart, path.index, updated)

    group = list(chart.tasks[path.sub_index])
    group[path.index] = group[path.index].apply_patch(patch)
    next_chart = _with_task_group(chart, path.sub_index, group)
    return recompute_sub_goal(next_chart, path.sub_index)


def update_cell(chart: Chart, view: ViewState, pos: int, patch: Mapping[str, Any]) -> Chart:
    path = resolve_target(view, pos)
    if path is None:
        return chart
    return update_cell_at(chart, path, patch)


def update_sub_goal(chart: Chart, index: int, patch: Mapping[str, Any]) -> Chart:
    return update_cell_at(chart, CellPath.sub(index), patch)


def update_task(chart: Chart, sub_index: int, index: int, patch: Mapping[str, Any]) -> Chart:
    return update_cell_at(chart, CellPath.task(sub_index, index), patch)


def clear_subtree(chart: Chart, sub_index: int) -> Chart:
    """子目标及其 8 个任务重置为空白（保留 id），其余不动。"""
    if not is_valid_index(sub_index):
        logger.warning("Ignoring clear_subtree for invalid index %r", sub_index)
        return chart
    next_chart = _with_sub_goal(chart, sub_index, blank_sub_goal(sub_index))
    return _with_task_group(next_chart, sub_index, blank_tasks(sub_index))


def replace_all(chart: Chart, incoming: Chart) -> Chart:
    """导入时整体替换。"""
    return incoming


# --- Suggestions ---

def bucket_paths(view: ViewState) -> List[CellPath]:
    """The 8 outer cells currently on screen, by outer index."""
    if view.mode == ViewMode.MAIN:
        return [CellPath.sub(i) for i in range(OUTER_SLOTS)]
    focus = view.focused_sub_goal_index
    if not is_valid_index(focus):
        return []
    return [CellPath.task(focus, i) for i in range(OUTER_SLOTS)]


def bucket_texts(chart: Chart, view: ViewState) -> List[str]:
    """当前视图外圈已有的非空文字（作为建议请求的 existing items）。"""
    cells = (get_cell_at(chart, path) for path in bucket_paths(view))
    return [cell.text for cell in cells if cell.text]


def apply_suggestions(chart: Chart, view: ViewState, ideas: List[str]) -> Chart:
    """
    Fill the empty-text cells of the current bucket with suggested ideas.

    Empty slots are visited in outer-index order and each takes the next of
    the first 8 ideas. Cells that already have text are never overwritten.
    """
    paths = bucket_paths(view)
    if not paths:
        return chart

    pending = [idea for idea in list(ideas)[:OUTER_SLOTS] if idea]
    if not pending:
        return chart

    next_chart = chart
    filled = 0
    for path in paths:
        if filled >= len(pending):
            break
        cell = get_cell_at(next_chart, path)
        if cell.text:
            continue
        updated = cell.apply_patch({"text": pending[filled]})
        filled += 1
        if path.kind == CellKind.SUB:
            next_chart = _with_sub_goal(next_chart, path.index, updated)
        else:
            group = list(next_chart.tasks[path.sub_index])
            group[path.index] = updated
            next_chart = _with_task_group(next_chart, path.sub_index, group)

    if view.mode == ViewMode.SUB and filled:
        next_chart = recompute_sub_goal(next_chart, view.focused_sub_goal_index)

    logger.info("Applied %d suggestion(s) in %s view", filled, view.mode.value)
    return next_chart
