"""
字体注册 - 固定两级回退链（主字体 + 符号字体）

字体在进程内只注册一次（按路径缓存），之后所有生成调用共享只读的 FontSet。
字体缺失属于部署配置问题，直接抛 FontLoadError。
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont

from ..config import get_config
from ..interfaces import FontLoadError

if TYPE_CHECKING:
    from ..config import RuntimeConfig

logger = logging.getLogger(__name__)


class FontRole(str, Enum):
    """回退链中的字体角色"""
    PRIMARY = "primary"
    SYMBOL = "symbol"


@dataclass(frozen=True)
class FontSet:
    """已注册的字体名（reportlab 注册名）"""
    primary: str
    symbol: str

    def name_for(self, role: FontRole) -> str:
        return self.symbol if role == FontRole.SYMBOL else self.primary


@lru_cache(maxsize=16)
def register_font(path: str) -> str:
    """注册TTF字体，返回注册名（同一路径只注册一次）"""
    font_path = Path(path)
    if not font_path.is_file():
        raise FontLoadError(f"字体文件不存在: {font_path}")

    digest = hashlib.md5(str(font_path.resolve()).encode("utf-8")).hexdigest()[:8]
    name = f"docfill-{font_path.stem}-{digest}"
    try:
        pdfmetrics.registerFont(TTFont(name, str(font_path)))
    except (TTFError, OSError) as e:
        raise FontLoadError(f"字体加载失败: {font_path}: {e}") from e

    logger.info(f"字体已注册: {name} <- {font_path}")
    return name


def load_font_set(primary_path: str | Path, symbol_path: str | Path) -> FontSet:
    return FontSet(
        primary=register_font(str(primary_path)),
        symbol=register_font(str(symbol_path)),
    )


def get_font_set(config: RuntimeConfig | None = None) -> FontSet:
    """按配置获取字体集合（进程级缓存）"""
    config = config or get_config()
    return load_font_set(config.fonts.primary_path, config.fonts.symbol_path)
