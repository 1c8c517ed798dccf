"""
AI assistant for Mandala Chart.

- SuggestionService: brainstorms up to 8 sub-goals or tasks for the current view
- ChatAssistant: free-form planning chat whose transcript feeds suggestions

Both return typed results; transport and configuration failures never escape as exceptions.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from core.config_manager import SystemConfig, config as default_config
from core.exceptions import MandalaError
from core.llm_adapter import BaseLLMAdapter, build_messages, get_llm
from core.logger import get_logger
from core.models import ChatMessage
from core.utils import load_prompt, parse_llm_json

logger = get_logger("assistant")

USER_LABEL = "使用者"
MODEL_LABEL = "AI"
UNDEFINED_MAIN = "未定義（請參考對話）"
UNDEFINED_SUB = "未定義"
CHAT_FALLBACK_REPLY = "我無法產生回應。"
CHAT_ERROR_REPLY = "抱歉，發生了錯誤。"


@dataclass
class SuggestionResult:
    """Either ideas (possibly empty) or an error message."""
    ideas: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


def format_transcript(messages: Sequence[ChatMessage], limit: int) -> str:
    """最近 ``limit`` 条消息，格式为 "使用者: ..." / "AI: ..."。"""
    recent = list(messages)[-limit:] if limit > 0 else []
    return "\n".join(
        f"{USER_LABEL if m.role == 'user' else MODEL_LABEL}: {m.text}" for m in recent
    )


def parse_ideas(content: str, limit: int, max_chars: int) -> List[str]:
    """
    Extract idea strings from an LLM reply.

    Accepts ``{"ideas": [...]}`` or a bare JSON list. Anything else yields an
    empty list. Non-string and blank items are dropped, the rest stripped and
    truncated to ``max_chars``; at most ``limit`` ideas are returned.
    """
    data: Any = parse_llm_json(content)
    if isinstance(data, dict):
        data = data.get("ideas")
    if not isinstance(data, list):
        return []

    ideas = []
    for item in data:
        if not isinstance(item, str):
            continue
        text = item.strip()
        if not text:
            continue
        ideas.append(text[:max_chars])
        if len(ideas) >= limit:
            break
    return ideas


class SuggestionService:
    """Suggests sub-goals (sub_goal_text=None) or tasks for a sub-goal."""

    def __init__(self, llm: Optional[BaseLLMAdapter] = None, cfg: Optional[SystemConfig] = None):
        self._llm = llm
        self.cfg = cfg or default_config

    @property
    def llm(self) -> BaseLLMAdapter:
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    def build_prompt(
        self,
        main_goal_text: str,
        sub_goal_text: Optional[str],
        existing: Sequence[str],
        transcript: str = ""
    ) -> str:
        transcript_block = ""
        if transcript:
            transcript_block = load_prompt("suggest/transcript", {"transcript": transcript})

        variables = {
            "transcript_block": transcript_block,
            "main_goal": main_goal_text or UNDEFINED_MAIN,
            "existing": ", ".join(existing),
            "limit": self.cfg.SUGGESTION_LIMIT,
        }
        if sub_goal_text is None:
            return load_prompt("suggest/sub_goals", variables)
        variables["sub_goal"] = sub_goal_text or UNDEFINED_SUB
        return load_prompt("suggest/tasks", variables)

    def suggest(
        self,
        main_goal_text: str,
        sub_goal_text: Optional[str],
        existing: Sequence[str],
        transcript: str = ""
    ) -> SuggestionResult:
        prompt = self.build_prompt(main_goal_text, sub_goal_text, existing, transcript)
        try:
            response = self.llm.generate(
                prompt,
                system_prompt=load_prompt("suggest/system") or None,
                temperature=self.cfg.SUGGESTION_TEMPERATURE,
                max_tokens=800,
                json_mode=True,
            )
        except MandalaError as e:
            logger.error("Suggestion request failed: %s", e.message)
            return SuggestionResult(error=e.get_user_message())

        if not response.success:
            logger.error("Suggestion response error: %s", response.error)
            return SuggestionResult(error=response.error)

        ideas = parse_ideas(response.content, self.cfg.SUGGESTION_LIMIT, self.cfg.SUGGESTION_MAX_CHARS)
        if not ideas:
            logger.warning("Suggestion response had no usable ideas")
        return SuggestionResult(ideas=ideas)


class ChatAssistant:
    """Planning chat; failures become an apology message in the transcript."""

    def __init__(self, llm: Optional[BaseLLMAdapter] = None):
        self._llm = llm

    @property
    def llm(self) -> BaseLLMAdapter:
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    def reply(self, history: Sequence[ChatMessage], message: str) -> ChatMessage:
        turns = [{"role": m.role, "content": m.text} for m in history]
        messages = build_messages(message, load_prompt("chat/system") or None, history=turns)
        try:
            response = self.llm.chat(messages)
        except MandalaError as e:
            logger.error("Chat request failed: %s", e.message)
            return ChatMessage(role="model", text=CHAT_ERROR_REPLY)

        if not response.success:
            logger.error("Chat response error: %s", response.error)
            return ChatMessage(role="model", text=CHAT_ERROR_REPLY)
        return ChatMessage(role="model", text=response.content or CHAT_FALLBACK_REPLY)
