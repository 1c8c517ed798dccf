"""
Side panel controller: chat, media and progress panels are mutually exclusive.
"""
from enum import Enum
from typing import Dict, Optional

from core.exceptions import PanelRejectedError
from core.logger import get_logger

logger = get_logger("panels")


class Panel(str, Enum):
    CHAT = "chat"
    MEDIA = "media"
    PROGRESS = "progress"


class PanelController:
    """At most one panel is open at any time."""

    def __init__(self):
        self._flags: Dict[Panel, bool] = {panel: False for panel in Panel}

    @property
    def active(self) -> Optional[Panel]:
        for panel, is_open in self._flags.items():
            if is_open:
                return panel
        return None

    def is_open(self, panel: Panel) -> bool:
        return self._flags[Panel(panel)]

    def open(self, panel: Panel, has_selection: bool = False) -> Panel:
        """
        Open ``panel`` exclusively.

        Raises:
            PanelRejectedError: media requested with no selected cell; flags
                are left unchanged.
        """
        panel = Panel(panel)
        if panel == Panel.MEDIA and not has_selection:
            raise PanelRejectedError(
                panel.value,
                "請先選擇一個格子以使用創意工具",
                hint="點擊任一格子後再開啟創意工作室",
            )
        for key in self._flags:
            self._flags[key] = key == panel
        logger.debug("Panel opened: %s", panel.value)
        return panel

    def close(self, panel: Panel) -> None:
        self._flags[Panel(panel)] = False

    def close_all(self) -> None:
        for key in self._flags:
            self._flags[key] = False

    def toggle(self, panel: Panel, has_selection: bool = False) -> bool:
        """Returns the new open state of ``panel``."""
        panel = Panel(panel)
        if self._flags[panel]:
            self.close_all()
            return False
        self.open(panel, has_selection=has_selection)
        return True

    def as_dict(self) -> Dict[str, bool]:
        return {panel.value: is_open for panel, is_open in self._flags.items()}
