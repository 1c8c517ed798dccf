"""
Import / export for Mandala Chart.

- validate: shape-level check of externally supplied chart data
- export_json: lossless JSON backup (unknown fields preserved)
- export_text: lossy plain-text rendering, not importable
"""
import json
from datetime import date
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from core.exceptions import ChartValidationError
from core.grid import OUTER_SLOTS
from core.logger import get_logger
from core.models import MAIN_GOAL_ID, Cell, Chart, sub_goal_id, task_id

logger = get_logger("import_export")

KNOWN_TOP_LEVEL = ("mainGoal", "subGoals", "tasks")


def _parse_raw(raw: Union[str, bytes, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ChartValidationError(f"讀取檔案失敗：不是有效的 JSON ({e})")
    if not isinstance(raw, Mapping):
        raise ChartValidationError("無效的檔案格式：頂層必須是物件")
    return raw


def _cell(raw: Any, default_id: str, field: str) -> Cell:
    if not isinstance(raw, Mapping):
        raise ChartValidationError(f"無效的檔案格式：{field} 必須是物件", field=field)
    return Cell.from_dict(raw, default_id)


def _fit(items: List[Any], field: str) -> List[Any]:
    """Pad/truncate an outer array to 8 slots."""
    if len(items) > OUTER_SLOTS:
        logger.warning("%s has %d entries, keeping the first %d", field, len(items), OUTER_SLOTS)
        return items[:OUTER_SLOTS]
    return items + [None] * (OUTER_SLOTS - len(items))


def validate(raw: Union[str, bytes, Mapping[str, Any]]) -> Chart:
    """
    Validate candidate chart data and build a Chart from it.

    Succeeds only if ``mainGoal`` is an object and ``subGoals`` / ``tasks``
    are arrays. Missing slots are filled with blank cells carrying canonical
    ids; entries beyond 8 are dropped.

    Raises:
        ChartValidationError: the candidate does not have the required shape.
    """
    data = _parse_raw(raw)

    main_raw = data.get("mainGoal")
    if not isinstance(main_raw, Mapping):
        raise ChartValidationError("無效的檔案格式：缺少 mainGoal 物件", field="mainGoal")
    sub_raw = data.get("subGoals")
    if not isinstance(sub_raw, list):
        raise ChartValidationError("無效的檔案格式：subGoals 必須是陣列", field="subGoals")
    tasks_raw = data.get("tasks")
    if not isinstance(tasks_raw, list):
        raise ChartValidationError("無效的檔案格式：tasks 必須是陣列", field="tasks")

    main_goal = _cell(main_raw, MAIN_GOAL_ID, "mainGoal")

    sub_goals = []
    for i, item in enumerate(_fit(sub_raw, "subGoals")):
        if item is None:
            sub_goals.append(Cell(id=sub_goal_id(i)))
        else:
            sub_goals.append(_cell(item, sub_goal_id(i), f"subGoals[{i}]"))

    tasks = []
    for i, group in enumerate(_fit(tasks_raw, "tasks")):
        if group is None:
            group = []
        if not isinstance(group, list):
            raise ChartValidationError(f"無效的檔案格式：tasks[{i}] 必須是陣列", field=f"tasks[{i}]")
        cells = []
        for j, item in enumerate(_fit(group, f"tasks[{i}]")):
            if item is None:
                cells.append(Cell(id=task_id(i, j)))
            else:
                cells.append(_cell(item, task_id(i, j), f"tasks[{i}][{j}]"))
        tasks.append(tuple(cells))

    extra = {k: v for k, v in data.items() if k not in KNOWN_TOP_LEVEL}
    return Chart(main_goal=main_goal, sub_goals=tuple(sub_goals), tasks=tuple(tasks), extra=extra)


def export_json(chart: Chart) -> str:
    return json.dumps(chart.to_dict(), ensure_ascii=False, indent=2)


def export_text(chart: Chart, today: Optional[date] = None) -> str:
    """
    Lossy text rendering: sub-goal and task text only.

    Subtrees where the sub-goal and all its tasks are empty are skipped.
    """
    today = today or date.today()
    lines = [
        f"曼陀羅思考法 - 核心目標：{chart.main_goal.text or '未定義'}",
        f"日期：{today.isoformat()}",
        "",
        "================================",
        "",
    ]
    for i, sub in enumerate(chart.sub_goals):
        group = chart.tasks[i]
        if not sub.text and all(not task.text for task in group):
            continue
        lines.append(f"[區域 {i + 1}] 子目標：{sub.text or '(未填寫)'}")
        for task in group:
            if task.text:
                lines.append(f"  - {task.text}")
        lines.append("")
    return "\n".join(lines) + "\n"


def export_filename(chart: Chart, ext: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    title = chart.main_goal.text or "untitled"
    # 文件名中不允许路径分隔符
    title = title.replace("/", "_").replace("\\", "_")
    return f"mandala-{title}-{today.isoformat()}.{ext}"


def load_chart_file(path: Union[str, Path]) -> Chart:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ChartValidationError(f"讀取檔案失敗：{e}")
    return validate(raw)


def save_chart_file(chart: Chart, path: Union[str, Path]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(export_json(chart), encoding="utf-8")
    logger.info("Chart exported to %s", target)
    return target
