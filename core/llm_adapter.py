"""
LLM Adapter for Mandala Chart.

Unified interface over the chat models behind the assistant (idea
suggestions and the planning chat). Supports OpenAI-compatible APIs, Ollama
(local) and a rule-based fallback used when no model is configured.
"""
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import yaml

from core.exceptions import (
    ConfigError,
    LLMAuthError,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from core.logger import get_logger
from core.paths import CONFIG_DIR

logger = get_logger("llm_adapter")

MODEL_CONFIG_PATH = CONFIG_DIR / "model.yaml"
LOCAL_MODEL_CONFIG_PATH = CONFIG_DIR / "local_model.yaml"


@dataclass
class LLMResponse:
    """Structured response from LLM."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


def build_messages(
    prompt: str,
    system_prompt: Optional[str] = None,
    history: Optional[List[Dict[str, str]]] = None
) -> List[Dict[str, str]]:
    """OpenAI-style message list: system, prior turns, then the new prompt."""
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    for turn in history or []:
        role = "assistant" if turn.get("role") in ("model", "assistant") else "user"
        messages.append({"role": role, "content": turn.get("content", "")})
    messages.append({"role": "user", "content": prompt})
    return messages


class BaseLLMAdapter(ABC):
    """Base class for LLM adapters."""

    provider = "unknown"
    timeout_seconds = 60.0

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.model_name = config.get("model_name", "unknown")

    @abstractmethod
    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False
    ) -> LLMResponse:
        """Multi-turn completion over OpenAI-style messages."""

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False
    ) -> LLMResponse:
        """Single-turn completion."""
        return self.chat(
            build_messages(prompt, system_prompt),
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )

    def _post(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """POST JSON and map transport failures onto the LLMError family."""
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, headers=headers, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                raise LLMAuthError(self.provider, self.model_name, url)
            if status == 429:
                retry_after = e.response.headers.get("retry-after")
                raise LLMRateLimitError(
                    self.provider,
                    self.model_name,
                    url,
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                )
            raise LLMError(
                f"HTTP 錯誤: {status} - {e.response.text[:200]}",
                self.provider,
                self.model_name,
                url,
            )
        except httpx.ConnectError:
            raise LLMConnectionError(self.provider, self.model_name, url)
        except httpx.TimeoutException:
            raise LLMTimeoutError(self.provider, self.model_name, url, self.timeout_seconds)
        except (httpx.HTTPError, ValueError) as e:
            raise LLMError(f"請求失敗: {e}", self.provider, self.model_name, url)


class OpenAIAdapter(BaseLLMAdapter):
    """Adapter for OpenAI API (also compatible with other OpenAI-compatible APIs)."""

    provider = "openai"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.api_key = config.get("api_key") or os.environ.get("OPENAI_API_KEY")
        self.base_url = config.get("base_url", "https://api.openai.com/v1").rstrip("/")
        self.model_name = config.get("model_name", "gpt-4o-mini")
        self.timeout_seconds = float(config.get("timeout", 60.0))

        if not self.api_key:
            raise ConfigError(
                "OpenAI API key not found. Set OPENAI_API_KEY env var or "
                "add 'api_key' to config/local_model.yaml",
                str(LOCAL_MODEL_CONFIG_PATH),
            )

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False,
        model: Optional[str] = None
    ) -> LLMResponse:
        """``model`` overrides the profile model for this call only."""
        payload: Dict[str, Any] = {
            "model": model or self.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        data = self._post(f"{self.base_url}/chat/completions", payload, self.headers)
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return LLMResponse(content="", model=self.model_name, error="Malformed completion payload")
        return LLMResponse(
            content=content,
            model=data.get("model", self.model_name),
            usage=data.get("usage")
        )


class OllamaAdapter(BaseLLMAdapter):
    """Adapter for local Ollama models."""

    provider = "ollama"
    timeout_seconds = 120.0

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.base_url = config.get("base_url", "http://localhost:11434").rstrip("/")
        self.model_name = config.get("model_name", "qwen2.5:7b")
        self.timeout_seconds = float(config.get("timeout", 120.0))

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False
    ) -> LLMResponse:
        payload: Dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens
            }
        }
        if json_mode:
            payload["format"] = "json"

        data = self._post(f"{self.base_url}/api/chat", payload)
        return LLMResponse(
            content=(data.get("message") or {}).get("content", ""),
            model=data.get("model", self.model_name),
            usage={
                "prompt_tokens": data.get("prompt_eval_count", 0),
                "completion_tokens": data.get("eval_count", 0)
            }
        )


class RuleBasedAdapter(BaseLLMAdapter):
    """
    Fallback adapter used when no LLM is configured.

    Chat replies with a fixed notice; JSON requests yield an empty idea list,
    which the assistant treats as zero suggestions.
    """

    provider = "rule_based"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.model_name = "rule_based"

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False
    ) -> LLMResponse:
        content = '{"ideas": []}' if json_mode else "[規則模式] 目前未啟用 AI 模型，請在 config/local_model.yaml 設定。"
        return LLMResponse(
            content=content,
            model=self.model_name,
            usage={"prompt_tokens": 0, "completion_tokens": 0}
        )


def load_model_config(profile_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Load model configuration from YAML file.
    Priority: local_model.yaml > model.yaml

    Supports a ``profiles`` mapping with ``active_profile``, or a flat config.
    ``${ENV_VAR}`` values are expanded from the environment.
    """
    raw_config: Dict[str, Any] = {}
    for path in (LOCAL_MODEL_CONFIG_PATH, MODEL_CONFIG_PATH):
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                raw_config = yaml.safe_load(f) or {}
            break

    if "profiles" in raw_config:
        profiles = raw_config["profiles"] or {}
        active_profile = profile_name or raw_config.get("active_profile", "rule_based")
        if active_profile not in profiles:
            logger.warning("Profile '%s' not found, falling back to rule-based mode", active_profile)
            return {"provider": "rule_based"}
        return _expand_env_vars(profiles[active_profile])

    if raw_config:
        return _expand_env_vars(raw_config)

    return {"provider": "rule_based"}


_ENV_PATTERN = re.compile(r'^\$\{([^}]+)\}$')


def _expand_env_vars(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Expand ${VAR} placeholders with environment variables.

    Raises:
        ConfigError: a placeholder names an unset variable.
    """
    result = {}
    for key, value in config.items():
        if isinstance(value, str):
            match = _ENV_PATTERN.match(value)
            if match:
                env_value = os.environ.get(match.group(1))
                if not env_value:
                    raise ConfigError(
                        f"設定未完成: '{key}' 仍是佔位符 '{value}'，"
                        f"請設定環境變數 {match.group(1)}。",
                        str(LOCAL_MODEL_CONFIG_PATH),
                    )
                result[key] = env_value
            else:
                result[key] = value
        elif isinstance(value, dict):
            result[key] = _expand_env_vars(value)
        else:
            result[key] = value
    return result


def create_llm_adapter(
    config: Optional[Dict[str, Any]] = None,
    profile_name: Optional[str] = None,
) -> BaseLLMAdapter:
    """Factory: build the adapter named by ``config['provider']``."""
    if config is None:
        config = load_model_config(profile_name)

    provider = str(config.get("provider", "rule_based")).lower()

    if provider == "openai":
        return OpenAIAdapter(config)
    elif provider == "ollama":
        return OllamaAdapter(config)
    elif provider == "rule_based":
        return RuleBasedAdapter(config)
    raise ConfigError(
        f"[設定錯誤] 未知的 LLM provider: '{provider}' (Profile: {profile_name})。",
        str(MODEL_CONFIG_PATH),
    )


# Profile Name -> Instance
_llm_registry: Dict[str, BaseLLMAdapter] = {}


def get_llm(profile_name: Optional[str] = None) -> BaseLLMAdapter:
    """Get or create the cached adapter for ``profile_name`` (None = active profile)."""
    key = profile_name or "__active__"
    if key not in _llm_registry:
        logger.info("Initializing LLM profile: %s", profile_name or "active")
        _llm_registry[key] = create_llm_adapter(profile_name=profile_name)
    return _llm_registry[key]


def reset_llm() -> None:
    """Reset the adapter registry (tests, config changes)."""
    _llm_registry.clear()
