"""
Core Data Models for Mandala Chart.

Defines the fundamental data structures: cells, the 1 + 8 + 64 chart,
view state and chat messages. Chart values are immutable; every update
produces a new value via dataclasses.replace.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from core.grid import OUTER_SLOTS, is_valid_index

MAIN_GOAL_ID = "main"


def sub_goal_id(index: int) -> str:
    return f"sub-{index}"


def task_id(sub_index: int, task_index: int) -> str:
    return f"task-{sub_index}-{task_index}"


class Frequency(str, Enum):
    ONE_TIME = "one-time"
    DAILY = "daily"
    WEEKLY = "weekly"


class ViewMode(str, Enum):
    MAIN = "MAIN"  # 主目标 + 8 个子目标
    SUB = "SUB"    # 某个子目标 + 其 8 个任务


class CellKind(str, Enum):
    MAIN = "main"
    SUB = "sub"
    TASK = "task"


# JSON (camelCase) <-> attribute (snake_case)
_JSON_FIELDS = {
    "id": "id",
    "text": "text",
    "notes": "notes",
    "imageRef": "image_ref",
    "videoRef": "video_ref",
    "isCompleted": "is_completed",
    "progress": "progress",
    "frequency": "frequency",
}
_ATTR_FIELDS = {attr: key for key, attr in _JSON_FIELDS.items()}


def _coerce_field(attr: str, value: Any) -> Any:
    """Convert a raw JSON value to the attribute type; raises ValueError/TypeError."""
    if value is None:
        return None
    if attr in ("id", "text", "notes", "image_ref", "video_ref"):
        if not isinstance(value, str):
            raise TypeError(f"{attr} must be a string")
        return value
    if attr == "is_completed":
        if not isinstance(value, bool):
            raise TypeError("isCompleted must be a boolean")
        return value
    if attr == "progress":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError("progress must be a number")
        if not 0 <= value <= 100 or value != int(value):
            raise ValueError(f"progress must be a whole number 0..100, got {value!r}")
        return int(value)
    if attr == "frequency":
        return Frequency(value)
    raise KeyError(attr)


@dataclass(frozen=True)
class Cell:
    """曼陀罗中的最小内容单元。"""
    id: str
    text: str = ""
    notes: Optional[str] = None
    image_ref: Optional[str] = None
    video_ref: Optional[str] = None
    is_completed: Optional[bool] = None   # 仅任务格有意义
    progress: Optional[int] = None        # 仅子目标格有意义 (0..100)
    frequency: Optional[Frequency] = None
    # 未知字段原样保留，导出时写回
    extra: Dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_empty(self) -> bool:
        return not self.text

    def apply_patch(self, patch: Mapping[str, Any]) -> "Cell":
        """
        Return a copy with ``patch`` applied.

        Keys may be attribute names (``image_ref``) or JSON names (``imageRef``).
        ``id`` is a stable slot identity and cannot be patched.
        """
        changes: Dict[str, Any] = {}
        for key, value in patch.items():
            attr = _JSON_FIELDS.get(key, key)
            if attr == "id":
                raise ValueError("Cell id is immutable")
            if attr not in _ATTR_FIELDS:
                raise ValueError(f"Unknown cell field: {key}")
            if attr == "text" and value is None:
                value = ""
            changes[attr] = _coerce_field(attr, value)
        if not changes:
            return self
        return replace(self, **changes)

    def blank(self) -> "Cell":
        """Same slot, no content."""
        return Cell(id=self.id)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id, "text": self.text}
        for attr, key in _ATTR_FIELDS.items():
            if attr in ("id", "text"):
                continue
            value = getattr(self, attr)
            if value is None:
                continue
            result[key] = value.value if isinstance(value, Enum) else value
        for key, value in self.extra.items():
            result.setdefault(key, value)
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_id: str) -> "Cell":
        """
        Build a cell from its JSON shape.

        Values that fail type coercion are kept verbatim in ``extra`` so they
        survive a re-export; a missing or non-string id falls back to
        ``default_id``.
        """
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            attr = _JSON_FIELDS.get(key)
            if attr is None:
                extra[key] = value
                continue
            try:
                kwargs[attr] = _coerce_field(attr, value)
            except (TypeError, ValueError):
                if attr in ("id", "text"):
                    continue
                extra[key] = value
        if not kwargs.get("id"):
            kwargs["id"] = default_id
        if kwargs.get("text") is None:
            kwargs["text"] = ""
        return cls(extra=extra, **kwargs)


# 无法解析位置时返回的哨兵格
EMPTY_CELL = Cell(id="")


def _as_tuple(values) -> tuple:
    return values if isinstance(values, tuple) else tuple(values)


@dataclass(frozen=True)
class Chart:
    """
    曼陀罗图：1 个主目标、8 个子目标、8x8 个任务。

    tasks[i] 永远恰好 8 格并归属于 sub_goals[i]；槽位不重排，只改内容。
    """
    main_goal: Cell
    sub_goals: Tuple[Cell, ...]
    tasks: Tuple[Tuple[Cell, ...], ...]
    extra: Dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "sub_goals", _as_tuple(self.sub_goals))
        object.__setattr__(self, "tasks", tuple(_as_tuple(group) for group in self.tasks))
        if len(self.sub_goals) != OUTER_SLOTS:
            raise ValueError(f"Chart needs {OUTER_SLOTS} sub-goals, got {len(self.sub_goals)}")
        if len(self.tasks) != OUTER_SLOTS or any(len(g) != OUTER_SLOTS for g in self.tasks):
            raise ValueError(f"Chart needs {OUTER_SLOTS}x{OUTER_SLOTS} tasks")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "mainGoal": self.main_goal.to_dict(),
            "subGoals": [cell.to_dict() for cell in self.sub_goals],
            "tasks": [[cell.to_dict() for cell in group] for group in self.tasks],
        }
        for key, value in self.extra.items():
            result.setdefault(key, value)
        return result


@dataclass(frozen=True)
class CellPath:
    """
    Address of a cell in the chart.

    ``main`` uses index -1; ``sub`` uses index 0..7; ``task`` uses index 0..7
    within sub-goal ``sub_index``.
    """
    kind: CellKind
    index: int = -1
    sub_index: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", CellKind(self.kind))
        if self.kind == CellKind.SUB and not is_valid_index(self.index):
            raise ValueError(f"Invalid sub-goal index: {self.index!r}")
        if self.kind == CellKind.TASK:
            if not is_valid_index(self.index) or not is_valid_index(self.sub_index):
                raise ValueError(f"Invalid task path: {self.sub_index!r}/{self.index!r}")

    @classmethod
    def main(cls) -> "CellPath":
        return cls(CellKind.MAIN)

    @classmethod
    def sub(cls, index: int) -> "CellPath":
        return cls(CellKind.SUB, index)

    @classmethod
    def task(cls, sub_index: int, index: int) -> "CellPath":
        return cls(CellKind.TASK, index, sub_index)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"kind": self.kind.value, "index": self.index}
        if self.sub_index is not None:
            result["subIndex"] = self.sub_index
        return result


# 当前选中的格子与路径同构
Selection = CellPath


@dataclass(frozen=True)
class ViewState:
    """
    视图状态。

    mode=SUB 时 focused_sub_goal_index 必为 0..7；mode=MAIN 时必为 None。
    选中任务时 sub_index 等于当前聚焦的子目标。
    """
    mode: ViewMode = ViewMode.MAIN
    focused_sub_goal_index: Optional[int] = None
    selection: Optional[Selection] = None

    def __post_init__(self):
        object.__setattr__(self, "mode", ViewMode(self.mode))
        if self.mode == ViewMode.MAIN and self.focused_sub_goal_index is not None:
            raise ValueError("MAIN view cannot have a focused sub-goal")
        if self.mode == ViewMode.SUB and not is_valid_index(self.focused_sub_goal_index):
            raise ValueError(f"SUB view needs a focus 0..7, got {self.focused_sub_goal_index!r}")
        sel = self.selection
        if sel is not None and sel.kind == CellKind.TASK:
            if self.mode != ViewMode.SUB or sel.sub_index != self.focused_sub_goal_index:
                raise ValueError("Task selection must belong to the focused sub-goal")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "focusedSubGoalIndex": self.focused_sub_goal_index,
            "selection": self.selection.to_dict() if self.selection else None,
        }


@dataclass
class ChatMessage:
    """对话记录中的一条消息。"""
    role: str  # "user" / "model"
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "text": self.text}
