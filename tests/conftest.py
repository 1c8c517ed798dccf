import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from core.assistant import ChatAssistant, SuggestionResult, SuggestionService  # noqa: E402
from core.config_manager import SystemConfig  # noqa: E402
from core.llm_adapter import BaseLLMAdapter, LLMResponse  # noqa: E402
from core.media_service import BaseMediaService, MediaResult  # noqa: E402
from core.session import MandalaSession  # noqa: E402


class FakeLLM(BaseLLMAdapter):
    """Records every call; returns ``content`` or raises ``raises``."""

    provider = "fake"

    def __init__(self, content: str = "", error=None, raises=None):
        super().__init__({"model_name": "fake-model"})
        self.content = content
        self.error = error
        self.raises = raises
        self.calls = []

    def chat(self, messages, temperature=0.7, max_tokens=1000, json_mode=False):
        self.calls.append({"messages": messages, "temperature": temperature, "json_mode": json_mode})
        if self.raises is not None:
            raise self.raises
        return LLMResponse(content=self.content, model=self.model_name, error=self.error)


class FakeSuggestions(SuggestionService):
    """Canned ideas; ``on_call`` runs inside the worker thread before returning."""

    def __init__(self):
        super().__init__(llm=FakeLLM(), cfg=SystemConfig())
        self.ideas = []
        self.error = None
        self.on_call = None
        self.calls = []

    def suggest(self, main_goal_text, sub_goal_text, existing, transcript=""):
        self.calls.append((main_goal_text, sub_goal_text, list(existing), transcript))
        if self.on_call is not None:
            self.on_call()
        if self.error:
            return SuggestionResult(error=self.error)
        return SuggestionResult(ideas=list(self.ideas))


class FakeMedia(BaseMediaService):
    GENERATED = "data:image/png;base64,R0VO"
    EDITED = "data:image/png;base64,RURJVA=="

    def __init__(self):
        self.fail = False
        self.calls = []

    def generate_image(self, prompt, aspect_ratio="1:1"):
        self.calls.append(("generate", prompt, aspect_ratio))
        return MediaResult(error="quota") if self.fail else MediaResult(ref=self.GENERATED)

    def edit_image(self, image_ref, prompt):
        self.calls.append(("edit", image_ref, prompt))
        return MediaResult(error="quota") if self.fail else MediaResult(ref=self.EDITED)

    def analyze_image(self, image_ref, prompt):
        self.calls.append(("analyze", image_ref, prompt))
        return MediaResult(error="quota") if self.fail else MediaResult(text="一隻貓")


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def suggestions():
    return FakeSuggestions()


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def session(suggestions, fake_llm, media):
    # 简短的问候语，避免问候本身满足对话长度门槛
    cfg = SystemConfig(CHAT_GREETING="hi")
    return MandalaSession(
        suggestions=suggestions,
        assistant=ChatAssistant(llm=fake_llm),
        media=media,
        cfg=cfg,
    )
