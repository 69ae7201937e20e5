"""
FastAPI application configuration module
"""

import os
import json
import logging
from pathlib import Path
from functools import lru_cache
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas import FallbackRule

# 加载.env文件,覆盖电脑自身环境变量
load_dotenv(override=True)


logger = logging.getLogger("config")


# 别名 -> NIM 模型 ID（Cloudflare Worker 部署的映射表）
DEFAULT_MODEL_MAPPING: Dict[str, str] = {
    "gpt-3.5-turbo": "nvidia/llama-3.1-nemotron-ultra-253b-v1",
    "gpt-4": "qwen/qwen3-coder-480b-a35b-instruct",
    "gpt-4-turbo": "moonshotai/kimi-k2-instruct-0905",
    "gpt-4o": "deepseek-ai/deepseek-v3.1",
    "claude-3-opus": "openai/gpt-oss-120b",
    "claude-3-sonnet": "openai/gpt-oss-20b",
    "gemini-pro": "qwen/qwen3-next-80b-a3b-thinking",
}

# 未命中映射表时按顺序匹配，先匹配先生效
DEFAULT_MODEL_FALLBACKS: List[Dict[str, Any]] = [
    {"keywords": ["gpt-4", "claude-opus", "405b"], "model": "meta/llama-3.1-405b-instruct"},
    {"keywords": ["claude", "gemini", "70b"], "model": "meta/llama-3.1-70b-instruct"},
]

DEFAULT_FALLBACK_MODEL = "meta/llama-3.1-8b-instruct"

THINKING_ENCODINGS = ("chat_template_kwargs", "system_prompt")


@lru_cache(maxsize=4)
def _load_model_config_file(path: str) -> dict:
    """
    从 JSON 文件加载模型映射配置（可选）

    文件格式::

        {
            "mapping": {"gpt-4o": "deepseek-ai/deepseek-v3.1"},
            "fallbacks": [{"keywords": ["claude"], "model": "meta/llama-3.1-70b-instruct"}],
            "default": "meta/llama-3.1-8b-instruct"
        }

    Returns:
        dict: 文件内容，文件不存在或读取失败时返回空字典
    """
    config_file = Path(path)
    if not config_file.exists():
        return {}

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error("[MODELS] 读取模型配置文件失败 %s: %s", path, e)
        return {}

    if not isinstance(data, dict):
        logger.error("[MODELS] 模型配置文件格式错误 %s: 顶层必须是对象", path)
        return {}

    logger.info("[MODELS] 从 %s 加载模型配置", path)
    return data


def _model_config_path() -> str:
    return os.getenv("MODEL_CONFIG_FILE", "models.json")


def _default_mapping() -> Dict[str, str]:
    data = _load_model_config_file(_model_config_path())
    mapping = data["mapping"] if "mapping" in data else DEFAULT_MODEL_MAPPING
    return dict(mapping)


def _default_fallbacks() -> List[FallbackRule]:
    data = _load_model_config_file(_model_config_path())
    rules = data["fallbacks"] if "fallbacks" in data else DEFAULT_MODEL_FALLBACKS
    return [FallbackRule.model_validate(rule) for rule in rules]


def _default_fallback_model() -> str:
    data = _load_model_config_file(_model_config_path())
    return data["default"] if "default" in data else DEFAULT_FALLBACK_MODEL


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(frozen=True, extra="ignore")

    # Upstream (NVIDIA NIM) Configuration
    NIM_API_BASE: str = "https://integrate.api.nvidia.com/v1"
    NIM_API_KEY: str = ""

    # Reasoning Configuration
    # SHOW_REASONING: 把上游 reasoning_content 以 <think> 块合并进正文
    # ENABLE_THINKING_MODE: 请求上游输出推理过程
    SHOW_REASONING: bool = True
    ENABLE_THINKING_MODE: bool = True
    THINKING_ENCODING: str = "chat_template_kwargs"
    THINKING_PROMPT: str = "detailed thinking on"

    # Generation defaults
    DEFAULT_TEMPERATURE: float = 0.6
    DEFAULT_MAX_TOKENS: int = 9024

    # Model Configuration - 映射表和回退规则都属于部署配置
    MODEL_MAPPING: Dict[str, str] = Field(default_factory=_default_mapping)
    MODEL_FALLBACKS: List[FallbackRule] = Field(default_factory=_default_fallbacks)
    DEFAULT_FALLBACK_MODEL: str = Field(default_factory=_default_fallback_model)

    # Service metadata
    SERVICE_NAME: str = "OpenAI to NVIDIA NIM Proxy"
    OWNED_BY: str = "nvidia-nim-proxy"

    # Server Configuration
    LISTEN_PORT: int = 3000

    # Logging Configuration - 支持三个等级：false, info, debug
    LOG_LEVEL: str = "info"

    # Request Configuration
    REQUEST_TIMEOUT: float = 300.0
    HTTP_PROXY: Optional[str] = None

    # 上游流中途出错时是否补发一个 error 事件（默认直接关闭流）
    EMIT_STREAM_ERROR_EVENT: bool = False

    def model_post_init(self, __context: Any) -> None:
        level = (self.LOG_LEVEL or "info").lower()
        object.__setattr__(self, "LOG_LEVEL", level if level in ["false", "info", "debug"] else "info")

        if self.THINKING_ENCODING not in THINKING_ENCODINGS:
            logger.warning("[CONFIG] 未知的 THINKING_ENCODING=%s，使用 chat_template_kwargs", self.THINKING_ENCODING)
            object.__setattr__(self, "THINKING_ENCODING", "chat_template_kwargs")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
