"""
Mandala Chart 异常定义模块。

定义系统中所有自定义异常的层次结构：
- MandalaError: 基类，所有已知错误
- ConfigError: 配置文件错误
- GridContractError: 九宫格位置契约违规（编程错误）
- ChartValidationError: 导入数据结构不合法
- PanelRejectedError: 侧边面板打开被拒绝
- ConfirmationError: 破坏性操作确认令牌无效
- LLMError: 模型调用相关错误
"""
from typing import Optional


class MandalaError(Exception):
    """Mandala Chart 基础异常类。

    所有系统内已知错误都继承自此类。
    捕获此类可以处理所有预期的错误情况。
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        """
        Args:
            message: 错误描述
            hint: 对用户的操作建议
        """
        super().__init__(message)
        self.message = message
        self.hint = hint

    def get_user_message(self) -> str:
        """返回用户友好的错误消息。"""
        if self.hint:
            return f"{self.message}\n💡 建議: {self.hint}"
        return self.message


class ConfigError(MandalaError):
    """配置文件错误。"""

    def __init__(self, message: str, config_path: Optional[str] = None):
        hint = f"請檢查設定檔: {config_path}" if config_path else "請檢查設定檔格式"
        super().__init__(message, hint)
        self.config_path = config_path


class GridContractError(MandalaError, ValueError):
    """九宫格位置或外圈索引越界。

    属于编程错误而非用户错误：调用方应先用 is_valid_position 守卫。
    """

    def __init__(self, message: str, value: Optional[int] = None):
        super().__init__(message, hint=None)
        self.value = value


class ChartValidationError(MandalaError):
    """导入的曼陀罗数据结构不合法。

    现有图表保持不变，错误信息直接展示给用户。
    """

    def __init__(self, message: str, field: Optional[str] = None):
        hint = "請確保匯入的是本應用程式產生的 JSON 檔案。"
        super().__init__(message, hint)
        self.field = field


class PanelRejectedError(MandalaError):
    """面板打开请求被拒绝（面板状态不变）。"""

    def __init__(self, panel: str, message: str, hint: Optional[str] = None):
        super().__init__(message, hint)
        self.panel = panel


class ConfirmationError(MandalaError):
    """待确认操作不存在或令牌已过期。"""

    def __init__(self, action_id: Optional[str] = None):
        message = "沒有待確認的操作" if action_id is None else f"無效的確認令牌: {action_id}"
        super().__init__(message, hint="請重新發起清除或匯入操作")
        self.action_id = action_id


class LLMError(MandalaError):
    """LLM 调用相关错误的基类。

    当模型调用失败时抛出，包含调用上下文信息。
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        self.provider = provider or "unknown"
        self.model_name = model_name or "unknown"
        self.endpoint = endpoint

        context = f"[{self.provider}/{self.model_name}]"
        super().__init__(f"{context} {message}")

    def get_user_message(self) -> str:
        """返回包含模型信息的用户友好消息。"""
        base = f"AI 服務呼叫失敗 ({self.provider}/{self.model_name}): {self.message}"
        if self.hint:
            return f"{base}\n💡 建議: {self.hint}"
        return base


class LLMConnectionError(LLMError):
    """无法连接到 LLM 服务。"""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__("無法連線到模型服務", provider, model_name, endpoint)
        if provider == "ollama":
            self.hint = "請確保 Ollama 正在執行 (ollama serve)"
        else:
            self.hint = "請檢查網路連線或 API 端點設定"


class LLMAuthError(LLMError):
    """LLM 鉴权失败。"""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        super().__init__("模型鑑權失敗", provider, model_name, endpoint)
        self.hint = "請檢查 API 金鑰是否正確設定"


class LLMTimeoutError(LLMError):
    """LLM 调用超时。"""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        message = "模型呼叫逾時"
        if timeout_seconds:
            message = f"模型呼叫逾時 ({timeout_seconds}秒)"
        super().__init__(message, provider, model_name, endpoint)
        self.timeout_seconds = timeout_seconds
        self.hint = "可能是網路慢或模型回應時間長，請稍後重試"


class LLMRateLimitError(LLMError):
    """LLM 请求频率限制。"""

    def __init__(
        self,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__("請求頻率超限", provider, model_name, endpoint)
        self.retry_after = retry_after
        self.hint = f"請在 {retry_after} 秒後重試" if retry_after else "請稍後重試"
