"""
Change notification for Mandala Chart.

Every state change in a session is published as a ChartEvent so that
non-UI consumers (HTTP layer, tests, persistence) can react without a
rendering framework.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List
from uuid import uuid4

from core.logger import get_logger

logger = get_logger("events")

# 事件类型
CHART_CHANGED = "chart_changed"
CHART_REPLACED = "chart_replaced"
VIEW_CHANGED = "view_changed"
PANELS_CHANGED = "panels_changed"
CHAT_UPDATED = "chat_updated"
NOTICE = "notice"


@dataclass
class ChartEvent:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: f"evt_{uuid4().hex[:12]}")
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "payload": self.payload,
            "event_id": self.event_id,
            "timestamp": self.timestamp,
        }


Listener = Callable[[ChartEvent], None]


class ChangeNotifier:
    """同步观察者列表；按订阅顺序依次通知。"""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event_type: str, payload: Dict[str, Any] = None) -> ChartEvent:
        event = ChartEvent(type=event_type, payload=payload or {})
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # 单个观察者失败不影响其余观察者与模型状态
                logger.error("Listener failed for event %s", event_type, exc_info=True)
        return event
