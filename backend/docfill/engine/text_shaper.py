"""
文本分段 - 按字体回退链把字符串切分为同字体片段

职责：
1. 按码点阈值为每个字符选择字体（主字体 / 符号字体）
2. 相邻同字体字符合并为最大片段，减少绘制调用
3. 片段从左到右依次排布：x += stringWidth(片段)，跨字体不做字距调整

码点阈值只是启发式规则，不是完整的文种识别：
元素内容限定为拉丁/泰文及少量符号（如 ✔）。

测试要点：
- test_shape_hello_check: "Hello✔" → 两个片段
- test_shape_empty: 空串不产生片段
- test_place_offsets: 第二个片段的 x 等于第一个片段宽度
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from reportlab.pdfbase import pdfmetrics

from ..config import get_config
from .fonts import FontRole, FontSet

if TYPE_CHECKING:
    from reportlab.pdfgen.canvas import Canvas


@dataclass(frozen=True)
class TextRun:
    """同字体片段"""
    text: str
    role: FontRole


@dataclass(frozen=True)
class PlacedRun:
    """已排布的片段"""
    text: str
    role: FontRole
    font_name: str
    x: float
    width: float


class TextShaper:
    """文本分段与排布"""

    def __init__(self, fonts: FontSet, symbol_threshold: int | None = None):
        self.fonts = fonts
        self.symbol_threshold = (
            symbol_threshold if symbol_threshold is not None
            else get_config().fonts.symbol_threshold
        )

    def role_for(self, ch: str) -> FontRole:
        return FontRole.SYMBOL if ord(ch) >= self.symbol_threshold else FontRole.PRIMARY

    def shape(self, text: str) -> list[TextRun]:
        runs: list[TextRun] = []
        if not text:
            return runs

        start = 0
        role = self.role_for(text[0])
        for i in range(1, len(text)):
            ch_role = self.role_for(text[i])
            if ch_role != role:
                runs.append(TextRun(text[start:i], role))
                start, role = i, ch_role
        runs.append(TextRun(text[start:], role))
        return runs

    def measure(self, run: TextRun, font_size: float) -> float:
        return pdfmetrics.stringWidth(run.text, self.fonts.name_for(run.role), font_size)

    def place(self, text: str, x: float, font_size: float) -> list[PlacedRun]:
        placed: list[PlacedRun] = []
        for run in self.shape(text):
            width = self.measure(run, font_size)
            placed.append(PlacedRun(run.text, run.role, self.fonts.name_for(run.role), x, width))
            x += width
        return placed

    def text_width(self, text: str, font_size: float) -> float:
        return sum(self.measure(run, font_size) for run in self.shape(text))

    def draw(self, canvas: Canvas, text: str, x: float, y: float, font_size: float) -> float:
        """在基线 y 处绘制文本，返回结束 x"""
        end = x
        for run in self.place(text, x, font_size):
            canvas.setFont(run.font_name, font_size)
            canvas.drawString(run.x, y, run.text)
            end = run.x + run.width
        return end
