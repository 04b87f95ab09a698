"""
渲染结果模型 - 取值结果、元素渲染结局与生成报告

每个元素的渲染结局显式记录为 ElementOutcome，
生成调用既能继续处理后续元素，也能汇总跳过原因用于诊断。
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .element import ElementType

# 调用方提供的任意JSON对象
DataContext = dict[str, Any]


class ResolvedValue(BaseModel):
    """取值解析结果"""
    value: str = ""
    suppressed: bool = False


class RenderStatus(str, Enum):
    """元素渲染结局"""
    DRAWN = "drawn"
    SUPPRESSED = "suppressed"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    """跳过原因"""
    OUT_OF_RANGE_PAGE = "out_of_range_page"
    LOAD_FAILED = "load_failed"
    NO_VALUE = "no_value"
    ERROR = "error"


class ElementOutcome(BaseModel):
    """单个元素的渲染结局"""
    element_id: str | int
    element_type: ElementType
    page_number: int
    status: RenderStatus
    reason: SkipReason | None = None
    detail: str | None = None

    @property
    def drawn(self) -> bool:
        return self.status == RenderStatus.DRAWN


class GenerationReport(BaseModel):
    """一次生成调用的元素结局汇总"""
    outcomes: list[ElementOutcome] = Field(default_factory=list)
    background_fallback: bool = False  # 底图加载失败，已使用空白页

    def add(self, outcome: ElementOutcome) -> None:
        self.outcomes.append(outcome)

    def _count(self, status: RenderStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def drawn(self) -> int:
        return self._count(RenderStatus.DRAWN)

    @property
    def suppressed(self) -> int:
        return self._count(RenderStatus.SUPPRESSED)

    @property
    def skipped(self) -> int:
        return self._count(RenderStatus.SKIPPED)

    def skip_reasons(self) -> dict[str | int, SkipReason]:
        """元素id → 跳过原因"""
        return {
            o.element_id: o.reason
            for o in self.outcomes
            if o.status == RenderStatus.SKIPPED and o.reason is not None
        }

    def get(self, element_id: str | int) -> ElementOutcome | None:
        for outcome in self.outcomes:
            if outcome.element_id == element_id:
                return outcome
        return None


class GeneratedDocument(BaseModel):
    """生成产物"""
    filename: str = "generated.pdf"
    content: bytes
    report: GenerationReport = Field(default_factory=GenerationReport)

    @property
    def media_type(self) -> str:
        return "application/pdf"
