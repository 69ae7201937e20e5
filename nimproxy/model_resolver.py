#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
模型名解析器 - 把客户端传入的模型别名映射为 NIM 模型 ID

映射表和回退规则都来自配置，不同部署可以使用不同的回退策略：
- 三级关键字阶梯（405b / 70b / 8b）
- 单一默认模型（回退规则为空）
"""

from typing import Dict, Iterable, List, Optional

from .helpers import debug_log
from .schemas import FallbackRule


class ModelResolver:
    """模型名解析器，resolve() 对任意输入都返回一个模型 ID"""

    def __init__(
        self,
        mapping: Dict[str, str],
        fallbacks: Iterable[FallbackRule],
        default_model: str,
    ) -> None:
        self._mapping = dict(mapping)
        self._fallbacks: List[FallbackRule] = list(fallbacks)
        self._default_model = default_model

    @classmethod
    def from_settings(cls, settings) -> "ModelResolver":
        return cls(
            settings.MODEL_MAPPING,
            settings.MODEL_FALLBACKS,
            settings.DEFAULT_FALLBACK_MODEL,
        )

    def aliases(self) -> List[str]:
        """映射表中的全部别名（保持配置顺序）"""
        return list(self._mapping)

    def resolve(self, model: Optional[str]) -> str:
        """
        解析模型名

        1. 精确匹配映射表
        2. 按顺序匹配回退规则（小写后子串匹配，先匹配先生效）
        3. 都未命中时返回默认模型
        """
        if model and model in self._mapping:
            return self._mapping[model]

        model_lower = (model or "").lower()
        for rule in self._fallbacks:
            if any(keyword.lower() in model_lower for keyword in rule.keywords):
                debug_log("[MODEL] 回退规则命中", model=model, resolved=rule.model)
                return rule.model

        debug_log("[MODEL] 使用默认模型", model=model, resolved=self._default_model)
        return self._default_model
