"""
nimproxy package - Core application modules
"""

from .config import settings, get_settings, Settings
from .helpers import debug_log, configure_structlog
from .schemas import OpenAIRequest, ModelsResponse, Model, Message, FallbackRule
from .errors import ProxyError, UpstreamError, ConfigurationError
from .model_resolver import ModelResolver
from .nim_transformer import NIMTransformer

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "debug_log",
    "configure_structlog",
    "OpenAIRequest",
    "ModelsResponse",
    "Model",
    "Message",
    "FallbackRule",
    "ProxyError",
    "UpstreamError",
    "ConfigurationError",
    "ModelResolver",
    "NIMTransformer",
]
