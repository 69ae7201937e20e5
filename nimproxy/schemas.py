"""
Application data models
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """Chat message model"""
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Union[str, List[Dict[str, Any]]]] = None
    name: Optional[str] = None


class OpenAIRequest(BaseModel):
    """OpenAI-compatible request model"""
    model_config = ConfigDict(extra="allow")

    model: str = ""
    messages: List[Message] = Field(default_factory=list)
    stream: Optional[bool] = False
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class FallbackRule(BaseModel):
    """One rung of the model fallback ladder"""
    model_config = ConfigDict(frozen=True)

    keywords: List[str]
    model: str


class Model(BaseModel):
    """Model information for listing"""
    id: str
    object: str = "model"
    created: int
    owned_by: str


class ModelsResponse(BaseModel):
    """Models list response model"""
    object: str = "list"
    data: List[Model]


class HealthResponse(BaseModel):
    """Health check payload"""
    status: str = "ok"
    service: str
    reasoning_display: bool
    thinking_mode: bool
