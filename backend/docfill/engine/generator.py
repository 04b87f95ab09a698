"""
PDF生成器 - 底图 + 元素 + 数据上下文 → 填充后的PDF

职责：
1. 加载底图：PDF 按页取尺寸；图片按像素尺寸生成单页；失败时回退为一张 595x842 空白页
2. 按页绘制元素（输入顺序），页码超出范围的元素跳过
3. 单元素失败隔离，汇总为 GenerationReport
4. PDF底图：reportlab 生成叠加层后逐页 merge_page 合并

依赖：
- reportlab: 叠加层绘制
- PyPDF2: 读取底图页尺寸、合并叠加层

测试要点：
- test_blank_fallback: 底图不可用 → 单页 595x842，报告 background_fallback
- test_out_of_range_page: pageNumber 超出范围 → Skipped(out_of_range_page)
- test_isolation: 远程图片不可达时其它元素照常绘制
- test_idempotent: 相同输入两次生成字节一致
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from PyPDF2 import PageObject, PdfReader, PdfWriter, Transformation
from PyPDF2.generic import ContentStream, DictionaryObject, NameObject
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen.canvas import Canvas

from ..config import get_config
from ..interfaces import (
    AssetLoadError,
    GenerationError,
    IAssetLoader,
    IPdfGenerator,
    IScriptEvaluator,
)
from ..models import (
    Background,
    DataContext,
    Element,
    ElementOutcome,
    FileType,
    GeneratedDocument,
    GenerationReport,
    RenderStatus,
    SkipReason,
)
from .asset_loader import AssetLoader, decode_image
from .compositor import PageCompositor
from .evaluator import ScriptEvaluator
from .fonts import FontSet, get_font_set
from .resolver import ValueResolver
from .table_renderer import TableRenderer
from .text_shaper import TextShaper

if TYPE_CHECKING:
    from PIL import Image

    from ..config import RuntimeConfig

logger = logging.getLogger(__name__)

# merge_page 合并时会检查的资源类别
MERGED_RESOURCE_KINDS = (
    "/ExtGState",
    "/Font",
    "/XObject",
    "/ColorSpace",
    "/Pattern",
    "/Shading",
    "/Properties",
)


@dataclass(frozen=True)
class PageSpec:
    """输出页尺寸（origin 为底图 mediabox 左下角偏移）"""
    width: float
    height: float
    origin_x: float = 0.0
    origin_y: float = 0.0

    @property
    def has_offset(self) -> bool:
        return bool(self.origin_x or self.origin_y)


@dataclass
class BackgroundLayout:
    """已加载的底图"""
    pages: list[PageSpec]
    reader: PdfReader | None = None
    image: Image.Image | None = None
    fallback: bool = False

    @property
    def page_count(self) -> int:
        return len(self.pages)


class PdfGenerator(IPdfGenerator):
    """PDF生成器实现（无共享可变状态，可并发调用）"""

    def __init__(
        self,
        evaluator: IScriptEvaluator | None = None,
        loader: IAssetLoader | None = None,
        fonts: FontSet | None = None,
        config: RuntimeConfig | None = None,
    ):
        self.config = config or get_config()
        self.evaluator = evaluator or ScriptEvaluator(
            max_steps=self.config.scripting.max_steps,
            max_string_length=self.config.scripting.max_string_length,
        )
        self.loader = loader or AssetLoader(
            asset_root=self.config.asset_root,
            user_agent=self.config.assets.user_agent,
            timeout=self.config.assets.fetch_timeout_sec,
        )
        self.resolver = ValueResolver(self.evaluator)
        self._fonts = fonts

    @property
    def fonts(self) -> FontSet:
        if self._fonts is None:
            self._fonts = get_font_set(self.config)
        return self._fonts

    def generate(
        self,
        background: Background | None,
        elements: list[Element],
        data: DataContext,
    ) -> GeneratedDocument:
        """生成填充后的PDF"""
        fonts = self.fonts  # 字体缺失直接抛 FontLoadError
        data = data or {}
        report = GenerationReport()

        layout = self.load_background(background)
        report.background_fallback = layout.fallback

        page_elements, outcomes = self._assign_pages(elements, layout.page_count)

        buffer = io.BytesIO()
        first = layout.pages[0]
        canvas = Canvas(
            buffer,
            pagesize=(first.width, first.height),
            invariant=int(self.config.render.invariant),
        )
        shaper = TextShaper(fonts, self.config.fonts.symbol_threshold)
        compositor = PageCompositor(
            canvas,
            self.resolver,
            shaper,
            self.loader,
            TableRenderer(self.evaluator, shaper, self.config),
            self.config,
        )

        for page_index, page in enumerate(layout.pages):
            canvas.setPageSize((page.width, page.height))
            if layout.image is not None:
                canvas.drawImage(ImageReader(layout.image), 0, 0, width=page.width, height=page.height)
            for index, element in page_elements[page_index]:
                outcomes[index] = compositor.compose(element, data, page.height)
            canvas.showPage()

        try:
            canvas.save()
            content = buffer.getvalue()
            if layout.reader is not None:
                content = self._merge_overlay(layout, content)
        except Exception as e:
            raise GenerationError(f"PDF序列化失败: {e}") from e

        for outcome in outcomes:
            if outcome is not None:
                report.add(outcome)

        logger.info(
            f"PDF生成完成: {layout.page_count} 页, 绘制 {report.drawn}, "
            f"抑制 {report.suppressed}, 跳过 {report.skipped}"
        )
        return GeneratedDocument(content=content, report=report)

    # === 底图 ===

    def load_background(self, background: Background | None) -> BackgroundLayout:
        """加载底图；任何失败都回退为单页空白"""
        if background is None or not background.file_url:
            return self._blank_layout(fallback=False)

        try:
            raw = self.loader.load(background.file_url)
            if raw is None:
                raise AssetLoadError(f"底图不存在: {background.file_url}")

            if background.file_type == FileType.PDF:
                reader = PdfReader(io.BytesIO(raw))
                pages = [
                    PageSpec(
                        width=float(p.mediabox.width),
                        height=float(p.mediabox.height),
                        origin_x=float(p.mediabox.left),
                        origin_y=float(p.mediabox.bottom),
                    )
                    for p in reader.pages
                ]
                if not pages:
                    raise AssetLoadError(f"底图PDF没有页面: {background.file_url}")
                return BackgroundLayout(pages=pages, reader=reader)

            image = decode_image(raw, background.file_url)
            return BackgroundLayout(pages=[PageSpec(float(image.width), float(image.height))], image=image)
        except Exception as e:
            logger.warning(f"底图加载失败，使用空白页: {e}")
            return self._blank_layout(fallback=True)

    def _blank_layout(self, fallback: bool) -> BackgroundLayout:
        render = self.config.render
        return BackgroundLayout(
            pages=[PageSpec(render.default_page_width, render.default_page_height)],
            fallback=fallback,
        )

    # === 元素分页 ===

    @staticmethod
    def _assign_pages(
        elements: list[Element],
        page_count: int,
    ) -> tuple[list[list[tuple[int, Element]]], list[ElementOutcome | None]]:
        """按页分组（保持输入顺序），页码超出范围的直接记为跳过"""
        page_elements: list[list[tuple[int, Element]]] = [[] for _ in range(page_count)]
        outcomes: list[ElementOutcome | None] = [None] * len(elements)

        for index, element in enumerate(elements):
            if 1 <= element.page_number <= page_count:
                page_elements[element.page_number - 1].append((index, element))
                continue
            logger.debug(f"元素 {element.id} 页码 {element.page_number} 超出范围 (共 {page_count} 页)")
            outcomes[index] = ElementOutcome(
                element_id=element.id,
                element_type=element.type,
                page_number=element.page_number,
                status=RenderStatus.SKIPPED,
                reason=SkipReason.OUT_OF_RANGE_PAGE,
            )
        return page_elements, outcomes

    # === 合并 ===

    @staticmethod
    def _merge_overlay(layout: BackgroundLayout, overlay_bytes: bytes) -> bytes:
        """叠加层逐页合并到PDF底图"""
        overlay = PdfReader(io.BytesIO(overlay_bytes))
        writer = PdfWriter()

        for spec, page, overlay_page in zip(layout.pages, layout.reader.pages, overlay.pages):
            rename_clashing_resources(page, overlay_page)
            if spec.has_offset:
                overlay_page.add_transformation(Transformation().translate(spec.origin_x, spec.origin_y))
            page.merge_page(overlay_page)
            writer.add_page(page)

        out = io.BytesIO()
        writer.write(out)
        return out.getvalue()


def _resource_dict(page: PageObject, kind: str) -> DictionaryObject | None:
    resources = page.get("/Resources")
    if resources is None:
        return None
    section = resources.get_object().get(kind)
    return section.get_object() if section is not None else None


def rename_clashing_resources(page: PageObject, overlay_page: PageObject) -> dict[str, str]:
    """
    叠加层中与底图同名的资源按固定规则改名（/F1 → /F1_o1）

    merge_page 遇到同名资源会追加随机后缀，先改名则合并结果只取决于输入。
    reportlab 各页共用同一个字体字典，改名只作用于本页的副本。

    Returns:
        改名映射（旧名 → 新名）
    """
    rename: dict[str, str] = {}
    renamed_sections: dict[str, DictionaryObject] = {}

    for kind in MERGED_RESOURCE_KINDS:
        taken = _resource_dict(page, kind)
        own = _resource_dict(overlay_page, kind)
        if not taken or not own:
            continue
        clashes = sorted(key for key in own.keys() if key in taken)
        if not clashes:
            continue
        section = DictionaryObject(own)
        for key in clashes:
            n = 1
            while f"{key}_o{n}" in taken or f"{key}_o{n}" in own:
                n += 1
            new_name = NameObject(f"{key}_o{n}")
            section[new_name] = section.raw_get(key)
            del section[key]
            rename[key] = new_name
        renamed_sections[kind] = section

    if not rename:
        return rename

    resources = DictionaryObject(overlay_page["/Resources"].get_object())
    for kind, section in renamed_sections.items():
        resources[NameObject(kind)] = section
    overlay_page[NameObject("/Resources")] = resources

    content = ContentStream(overlay_page.get_contents(), overlay_page.pdf)
    for operands, _operator in content.operations:
        if not isinstance(operands, list):
            continue
        for i, operand in enumerate(operands):
            if isinstance(operand, NameObject) and operand in rename:
                operands[i] = rename[operand]
    overlay_page[NameObject("/Contents")] = content
    return rename
