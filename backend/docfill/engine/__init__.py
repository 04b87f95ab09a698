"""
生成引擎 - 模板元素 + 数据上下文 → PDF

- ScriptEvaluator: 受限语法脚本求值
- ValueResolver: 元素取值优先级
- TextShaper: 字体回退分段
- AssetLoader: 图片/底图资源加载
- PageCompositor / TableRenderer: 元素绘制
- PdfGenerator: 生成编排
"""

from .asset_loader import AssetLoader, decode_image, is_image_reference
from .compositor import PageCompositor, element_box, to_page_y
from .evaluator import EVAL_FAILED, UNDEFINED, ScriptEvaluator
from .fonts import FontRole, FontSet, get_font_set, load_font_set
from .generator import PdfGenerator
from .resolver import ValueResolver, interpolate
from .table_renderer import TableRenderer
from .text_shaper import TextShaper

__all__ = [
    "ScriptEvaluator",
    "EVAL_FAILED",
    "UNDEFINED",
    "ValueResolver",
    "interpolate",
    "FontRole",
    "FontSet",
    "get_font_set",
    "load_font_set",
    "TextShaper",
    "AssetLoader",
    "decode_image",
    "is_image_reference",
    "PageCompositor",
    "element_box",
    "to_page_y",
    "TableRenderer",
    "PdfGenerator",
]
