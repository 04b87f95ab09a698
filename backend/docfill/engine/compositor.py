"""
页面合成 - 把单个元素绘制到当前页

职责：
1. 坐标转换：编辑器坐标（左上原点，y向下）→ 页面坐标（左下原点，y向上）
   page_y = page_height - y；高度为 H 的框底边在 page_y - H
2. 按元素类型分派绘制（text / qr / image / signature / table）
3. 单元素失败隔离：异常记录日志后转为 Skipped，继续处理下一个元素

元素状态：Pending → Resolved → {Suppressed | Drawn | Skipped(原因)}

测试要点：
- test_element_box_flip: (50, 100) 在 842 高页面上 → top=742
- test_text_baseline: 基线 = page_y - fontSize
- test_isolation: 单个元素异常不影响其它元素
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterator

from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.utils import ImageReader

from ..config import get_config
from ..interfaces import (
    AssetLoadError,
    IAssetLoader,
    IValueResolver,
    InvalidReferenceError,
    UnsupportedImageError,
)
from ..models import (
    Alignment,
    DataContext,
    Element,
    ElementOutcome,
    ElementType,
    RenderStatus,
    SkipReason,
)
from .asset_loader import decode_image, is_image_reference

if TYPE_CHECKING:
    from PIL import Image
    from reportlab.pdfgen.canvas import Canvas

    from ..config import RuntimeConfig
    from .table_renderer import TableRenderer
    from .text_shaper import TextShaper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ElementBox:
    """元素在页面坐标中的框"""
    x: float
    top: float
    bottom: float
    width: float
    height: float


def to_page_y(editor_y: float, page_height: float) -> float:
    return page_height - editor_y


def element_box(element: Element, page_height: float) -> ElementBox:
    top = to_page_y(element.y, page_height)
    return ElementBox(
        x=element.x,
        top=top,
        bottom=top - element.height,
        width=element.width,
        height=element.height,
    )


def aligned_x(element: Element, text_width: float) -> float:
    if element.alignment == Alignment.CENTER:
        return element.x + (element.width - text_width) / 2
    if element.alignment == Alignment.RIGHT:
        return element.x + element.width - text_width
    return element.x


Handler = Callable[[Element, str, float, DataContext], "SkipReason | None"]


class PageCompositor:
    """元素绘制（每次生成调用独立一个实例）"""

    def __init__(
        self,
        canvas: Canvas,
        resolver: IValueResolver,
        shaper: TextShaper,
        loader: IAssetLoader,
        table_renderer: TableRenderer,
        config: RuntimeConfig | None = None,
    ):
        self.canvas = canvas
        self.resolver = resolver
        self.shaper = shaper
        self.loader = loader
        self.table_renderer = table_renderer
        self.config = config or get_config()

        self._handlers: dict[ElementType, Handler] = {
            ElementType.TEXT: self._draw_text,
            ElementType.QR: self._draw_qr,
            ElementType.IMAGE: self._draw_image,
            ElementType.SIGNATURE: self._draw_image,
            ElementType.TABLE: self._draw_table,
        }
        missing = set(ElementType) - set(self._handlers)
        if missing:
            raise TypeError(f"缺少元素类型处理器: {sorted(t.value for t in missing)}")

    def compose(self, element: Element, data: DataContext, page_height: float) -> ElementOutcome:
        """解析并绘制单个元素，任何异常都转为 Skipped"""
        try:
            resolved = self.resolver.resolve(element, data)
            if resolved.suppressed:
                return self._outcome(element, RenderStatus.SUPPRESSED)
            reason = self._handlers[element.type](element, resolved.value, page_height, data)
        except (InvalidReferenceError, AssetLoadError, UnsupportedImageError) as e:
            logger.warning(f"元素 {element.id} 图片加载失败: {e}")
            return self._outcome(element, RenderStatus.SKIPPED, SkipReason.LOAD_FAILED, str(e))
        except Exception as e:
            logger.exception(f"元素 {element.id} 渲染失败")
            return self._outcome(element, RenderStatus.SKIPPED, SkipReason.ERROR, str(e))

        if reason is not None:
            return self._outcome(element, RenderStatus.SKIPPED, reason)
        return self._outcome(element, RenderStatus.DRAWN)

    @staticmethod
    def _outcome(
        element: Element,
        status: RenderStatus,
        reason: SkipReason | None = None,
        detail: str | None = None,
    ) -> ElementOutcome:
        return ElementOutcome(
            element_id=element.id,
            element_type=element.type,
            page_number=element.page_number,
            status=status,
            reason=reason,
            detail=detail,
        )

    @contextmanager
    def _element_space(self, element: Element, page_height: float) -> Iterator[ElementBox]:
        """原点移到元素左上角，按 rotation 顺时针旋转"""
        box = element_box(element, page_height)
        self.canvas.saveState()
        try:
            self.canvas.translate(box.x, box.top)
            if element.rotation:
                self.canvas.rotate(-element.rotation)
            yield box
        finally:
            self.canvas.restoreState()

    # === 各类型绘制 ===

    def _draw_text(self, element: Element, value: str, page_height: float, data: DataContext) -> SkipReason | None:
        if not value:
            return SkipReason.NO_VALUE

        render = self.config.render
        font_size = element.font_size or render.default_font_size
        top = to_page_y(element.y, page_height)
        leading = font_size * render.line_spacing

        self.canvas.setFillGray(0)
        for i, line in enumerate(value.splitlines()):
            baseline = top - font_size - i * leading
            x = aligned_x(element, self.shaper.text_width(line, font_size))
            self.shaper.draw(self.canvas, line, x, baseline, font_size)
        return None

    def _draw_qr(self, element: Element, value: str, page_height: float, data: DataContext) -> SkipReason | None:
        if is_image_reference(value):
            image = self._try_load_image(value)
            if image is not None:
                self._place_image(element, image, page_height)
                return None

        widget = QrCodeWidget(value or " ")
        x1, y1, x2, y2 = widget.getBounds()
        scale_x = element.width / (x2 - x1)
        scale_y = element.height / (y2 - y1)
        drawing = Drawing(element.width, element.height, transform=[scale_x, 0, 0, scale_y, 0, 0])
        drawing.add(widget)
        with self._element_space(element, page_height):
            renderPDF.draw(drawing, self.canvas, 0, -element.height)
        return None

    def _try_load_image(self, reference: str) -> Image.Image | None:
        """二维码元素：静态图片引用能解析时优先使用"""
        try:
            data = self.loader.load(reference)
            return decode_image(data, reference) if data else None
        except (InvalidReferenceError, AssetLoadError, UnsupportedImageError) as e:
            logger.debug(f"二维码图片引用不可用，改为生成二维码: {e}")
            return None

    def _draw_image(self, element: Element, value: str, page_height: float, data: DataContext) -> SkipReason | None:
        if not is_image_reference(value):
            return SkipReason.NO_VALUE

        raw = self.loader.load(value)
        if raw is None:
            return SkipReason.LOAD_FAILED

        self._place_image(element, decode_image(raw, value), page_height)
        return None

    def _place_image(self, element: Element, image: Image.Image, page_height: float) -> None:
        with self._element_space(element, page_height):
            self.canvas.drawImage(
                ImageReader(image),
                0,
                -element.height,
                width=element.width,
                height=element.height,
                mask="auto",
            )

    def _draw_table(self, element: Element, value: str, page_height: float, data: DataContext) -> SkipReason | None:
        font_size = element.font_size or self.config.render.default_font_size
        with self._element_space(element, page_height):
            self.table_renderer.render(self.canvas, element, data, font_size)
        return None
