import json
import os
from typing import Any, Dict, Optional

from core.logger import get_logger
from core.paths import CONFIG_DIR

logger = get_logger("utils")

# Prompt 模板目录
PROMPTS_DIR = CONFIG_DIR / "prompts"


def load_prompt(name: str, variables: Optional[Dict[str, Any]] = None) -> str:
    """
    加载 Prompt 模板文件，支持子目录和变量注入。

    Args:
        name: Prompt 名称，支持子目录 (如 "suggest/sub_goals")
        variables: 变量字典，用于替换 {var} 占位符

    Returns:
        渲染后的 Prompt 字符串；模板不存在时返回空字符串
    """
    prompt_path = PROMPTS_DIR / f"{name.replace('/', os.sep)}.md"

    if not prompt_path.exists():
        logger.warning("Prompt '%s' not found at %s", name, prompt_path)
        return ""

    template = prompt_path.read_text(encoding="utf-8")

    if variables:
        for key, value in variables.items():
            template = template.replace(f"{{{key}}}", str(value))

    return template


def parse_llm_json(content: str) -> Optional[Any]:
    """
    解析 LLM 返回的 JSON 内容。

    LLM 经常将 JSON 包裹在 Markdown 代码块中，此函数自动处理这些情况。

    Returns:
        解析后的对象（dict 或 list），解析失败返回 None

    示例:
        >>> parse_llm_json('```json\\n{"ideas": ["a"]}\\n```')
        {'ideas': ['a']}
    """
    if not content:
        return None

    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]

    try:
        return json.loads(content.strip())
    except json.JSONDecodeError:
        return None
