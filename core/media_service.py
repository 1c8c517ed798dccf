"""
Media Service for Mandala Chart.

Generates, edits and analyzes the image attached to a cell. The session only
consumes the returned reference (a data URL) to set ``imageRef``.
"""
import base64
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from core.exceptions import ConfigError, LLMError
from core.llm_adapter import OpenAIAdapter, build_messages, load_model_config
from core.logger import get_logger

logger = get_logger("media_service")

_DATA_URL = re.compile(r"^data:(image/[\w.+-]+);base64,(.*)$", re.DOTALL)

# aspect ratio -> image size accepted by the images API
ASPECT_SIZES = {
    "1:1": "1024x1024",
    "16:9": "1536x1024",
    "4:3": "1536x1024",
    "9:16": "1024x1536",
    "3:4": "1024x1536",
}


@dataclass
class MediaResult:
    """Reference (or analysis text) on success, error otherwise."""
    ref: Optional[str] = None
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and (self.ref is not None or self.text is not None)


def to_data_url(b64: str, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{b64}"


def split_data_url(ref: str) -> Tuple[str, bytes]:
    """Returns (mime, raw bytes); plain base64 is treated as PNG."""
    match = _DATA_URL.match(ref)
    if match:
        return match.group(1), base64.b64decode(match.group(2))
    return "image/png", base64.b64decode(ref)


class BaseMediaService(ABC):

    @abstractmethod
    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> MediaResult:
        ...

    @abstractmethod
    def edit_image(self, image_ref: str, prompt: str) -> MediaResult:
        ...

    @abstractmethod
    def analyze_image(self, image_ref: str, prompt: str) -> MediaResult:
        ...


class DisabledMediaService(BaseMediaService):
    """No image provider configured."""

    NOTICE = "未設定圖片模型，創意工作室無法使用。"

    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> MediaResult:
        return MediaResult(error=self.NOTICE)

    def edit_image(self, image_ref: str, prompt: str) -> MediaResult:
        return MediaResult(error=self.NOTICE)

    def analyze_image(self, image_ref: str, prompt: str) -> MediaResult:
        return MediaResult(error=self.NOTICE)


class OpenAIMediaService(BaseMediaService):
    """Images API for generate/edit, a vision chat model for analysis."""

    def __init__(self, config: Dict[str, Any]):
        self.chat = OpenAIAdapter(config)
        self.image_model = config.get("image_model", "gpt-image-1")
        self.vision_model = config.get("vision_model", self.chat.model_name)
        self.timeout_seconds = float(config.get("image_timeout", 120.0))

    def _images_request(self, path: str, **kwargs) -> MediaResult:
        url = f"{self.chat.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.chat.api_key}"}
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, headers=headers, **kwargs)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Image request to %s failed: %s", path, e)
            return MediaResult(error=f"圖片服務失敗: {e}")

        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            logger.error("Image response from %s has no data list", path)
            return MediaResult(error="圖片服務回傳格式錯誤")

        for item in data["data"]:
            if not isinstance(item, dict):
                continue
            if item.get("b64_json"):
                return MediaResult(ref=to_data_url(item["b64_json"]))
            if item.get("url"):
                return MediaResult(ref=item["url"])
        return MediaResult(error="圖片服務沒有回傳圖片")

    def generate_image(self, prompt: str, aspect_ratio: str = "1:1") -> MediaResult:
        payload = {
            "model": self.image_model,
            "prompt": prompt,
            "size": ASPECT_SIZES.get(aspect_ratio, ASPECT_SIZES["1:1"]),
            "n": 1,
        }
        return self._images_request("/images/generations", json=payload)

    def edit_image(self, image_ref: str, prompt: str) -> MediaResult:
        try:
            mime, raw = split_data_url(image_ref)
        except ValueError:
            return MediaResult(error="無法讀取目前的圖片")
        files = {"image": ("cell.png", raw, mime)}
        data = {"model": self.image_model, "prompt": prompt}
        return self._images_request("/images/edits", files=files, data=data)

    def analyze_image(self, image_ref: str, prompt: str) -> MediaResult:
        messages = build_messages(prompt)
        messages[-1]["content"] = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": image_ref}},
        ]
        try:
            response = self.chat.chat(messages, temperature=0.2, model=self.vision_model)
        except LLMError as e:
            return MediaResult(error=e.get_user_message())
        if not response.success:
            return MediaResult(error=response.error)
        return MediaResult(text=response.content or "無法取得分析結果。")


def create_media_service(config: Optional[Dict[str, Any]] = None) -> BaseMediaService:
    """
    Media is available only for OpenAI-compatible profiles.

    An incomplete profile (missing key, unset placeholder) disables media
    instead of failing the session.
    """
    try:
        if config is None:
            config = load_model_config()
        if str(config.get("provider", "")).lower() == "openai":
            return OpenAIMediaService(config)
    except ConfigError as e:
        logger.warning("Media service disabled: %s", e.message)
    return DisabledMediaService()
