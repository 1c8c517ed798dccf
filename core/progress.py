"""
Progress derivation for Mandala Chart.

A sub-goal's progress is derived from its tasks; only tasks with text count.
Overall progress averages the sub-goals that have text. Progress is
recomputed eagerly on every task mutation, never lazily on read.
"""
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Sequence

from core.models import Cell, Chart


def round_half_up(value: float) -> int:
    """Math.round semantics; Python's round() is banker's rounding."""
    return int(math.floor(value + 0.5))


def sub_goal_progress(tasks: Sequence[Cell]) -> int:
    """
    Completion percentage of a sub-goal.

    N = tasks with non-empty text. Returns 0 when N == 0, otherwise
    round_half_up(100 * completed / N) where completed counts non-empty tasks
    marked is_completed.
    """
    filled = [task for task in tasks if task.text]
    if not filled:
        return 0
    completed = sum(1 for task in filled if task.is_completed)
    return round_half_up(100 * completed / len(filled))


def overall_progress(chart: Chart) -> int:
    """子目标（有文字者）进度的平均值；没有则为 0。"""
    filled = [sub for sub in chart.sub_goals if sub.text]
    if not filled:
        return 0
    total = sum(sub.progress or 0 for sub in filled)
    return round_half_up(total / len(filled))


def recompute_sub_goal(chart: Chart, sub_index: int) -> Chart:
    """Return chart with sub_goals[sub_index].progress re-derived from its tasks."""
    progress = sub_goal_progress(chart.tasks[sub_index])
    current = chart.sub_goals[sub_index]
    if current.progress == progress:
        return chart
    sub_goals = list(chart.sub_goals)
    sub_goals[sub_index] = replace(current, progress=progress)
    return replace(chart, sub_goals=tuple(sub_goals))


@dataclass
class SubGoalProgress:
    index: int
    text: str
    filled_tasks: int
    completed_tasks: int
    progress: int

    @property
    def is_completed(self) -> bool:
        return self.filled_tasks > 0 and self.progress == 100


@dataclass
class ProgressReport:
    """进度追踪面板所需的汇总数据。"""
    overall: int
    sub_goals: List[SubGoalProgress] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "subGoals": [
                {
                    "index": item.index,
                    "text": item.text,
                    "filledTasks": item.filled_tasks,
                    "completedTasks": item.completed_tasks,
                    "progress": item.progress,
                    "isCompleted": item.is_completed,
                }
                for item in self.sub_goals
            ],
        }


def progress_report(chart: Chart) -> ProgressReport:
    items = []
    for index, sub in enumerate(chart.sub_goals):
        tasks = chart.tasks[index]
        filled = [task for task in tasks if task.text]
        items.append(SubGoalProgress(
            index=index,
            text=sub.text,
            filled_tasks=len(filled),
            completed_tasks=sum(1 for task in filled if task.is_completed),
            progress=sub.progress or 0,
        ))
    return ProgressReport(overall=overall_progress(chart), sub_goals=items)
