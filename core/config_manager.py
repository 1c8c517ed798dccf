"""
Configuration Manager for Mandala Chart.

集中管理系统常量和配置参数。所有经验值显式声明并可通过 config/runtime.yaml 覆盖。

使用方式:
    from core.config_manager import config
    limit = config.SUGGESTION_LIMIT
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.paths import CONFIG_DIR

RUNTIME_CONFIG_PATH = CONFIG_DIR / "runtime.yaml"

FONT_SIZES = ("small", "medium", "large")
THEMES = ("light", "dark")


@dataclass
class SystemConfig:
    """
    系统运行时常量配置。
    """

    # === AI 建议 ===

    # 每次建议最多采纳的条目数（与外圈格数一致）
    SUGGESTION_LIMIT: int = 8

    # 单条建议最大字符数，超出截断
    # 经验值依据：格子内可读的文字长度
    SUGGESTION_MAX_CHARS: int = 60

    # 建议生成温度
    SUGGESTION_TEMPERATURE: float = 0.7

    # 建议请求返回时视图已切换则丢弃结果
    DISCARD_STALE_SUGGESTIONS: bool = True

    # === 对话 ===

    # 作为建议上下文的最近对话条数
    CHAT_CONTEXT_MESSAGES: int = 10

    # 目标为空时，对话上下文至少需要的字符数才允许请求建议
    MIN_CHAT_CONTEXT_CHARS: int = 50

    CHAT_GREETING: str = "你好！我是你的曼陀羅 AI 助手。今天有什麼我可以幫你規劃的嗎？"

    # === 界面偏好 ===
    DEFAULT_THEME: str = "light"
    DEFAULT_FONT_SIZE: str = "medium"

    # === 媒体 ===
    DEFAULT_ASPECT_RATIO: str = "1:1"
    DEFAULT_IMAGE_PROMPT: str = "Abstract mandala art"
    DEFAULT_ANALYZE_PROMPT: str = "這張圖片裡有什麼？"

    def __post_init__(self):
        if self.DEFAULT_THEME not in THEMES:
            self.DEFAULT_THEME = "light"
        if self.DEFAULT_FONT_SIZE not in FONT_SIZES:
            self.DEFAULT_FONT_SIZE = "medium"


def _load_runtime_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """加载运行时配置覆盖（如果存在）。"""
    target = path or RUNTIME_CONFIG_PATH
    if not target.exists():
        return {}

    try:
        with open(target, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def get_config(path: Optional[Path] = None) -> SystemConfig:
    """
    获取系统配置实例。

    优先级：runtime.yaml > 默认值
    """
    base = SystemConfig()
    overrides = _load_runtime_config(path)

    for key, value in overrides.items():
        if hasattr(base, key):
            setattr(base, key, value)

    base.__post_init__()
    return base


# 全局配置实例
config = get_config()
