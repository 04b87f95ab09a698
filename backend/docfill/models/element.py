"""
元素模型 - 模板页面上的定位字段

编辑器以camelCase输出（fieldName/pageNumber...），模型内部使用snake_case，
两种写法均可输入，序列化时输出camelCase。
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

INDEX_PLUS_1 = "index_plus_1"


class ElementType(str, Enum):
    """元素类型（封闭集合）"""
    TEXT = "text"
    QR = "qr"
    IMAGE = "image"
    SIGNATURE = "signature"
    TABLE = "table"


class Alignment(str, Enum):
    """水平对齐"""
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ColumnDef(_CamelModel):
    """表格列定义"""
    header: str = ""
    field: str = ""
    width: str | float | None = Field(None, description="占元素宽度的百分比")
    script: str | None = None

    @field_validator("header", "field", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def width_percent(self, column_count: int) -> float:
        """列宽百分比，缺失/非法时均分"""
        try:
            pct = float(str(self.width).strip().rstrip("%"))
        except (TypeError, ValueError):
            pct = 0.0
        if pct <= 0 and column_count > 0:
            return 100.0 / column_count
        return pct


class TableConfig(_CamelModel):
    """表格配置（来自元素metadata）"""
    columns: list[ColumnDef] = Field(default_factory=list)
    show_lines: bool = False
    row_height: float | None = None
    data_source: str | None = None

    @classmethod
    def from_metadata(cls, metadata: Any) -> TableConfig:
        """
        兼容编辑器产生的三种metadata形态：
        - [列, ...]
        - {columns, rowHeight, showLines, dataSource}
        - {tableConfig: {columns, showLines, dataSource}}
        """
        if isinstance(metadata, list):
            return cls(columns=metadata)
        if not isinstance(metadata, dict):
            return cls()

        raw = dict(metadata)
        nested = raw.pop("tableConfig", None)
        if isinstance(nested, dict):
            # 外层rowHeight等与内层合并，内层优先
            raw = {**raw, **nested}
        allowed = {"columns", "showLines", "show_lines", "rowHeight", "row_height",
                   "dataSource", "data_source"}
        return cls(**{k: v for k, v in raw.items() if k in allowed and v is not None})

    @field_validator("row_height", mode="before")
    @classmethod
    def _parse_row_height(cls, v: Any) -> Any:
        if v in (None, ""):
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        return value if value > 0 else None

    @field_validator("data_source", mode="before")
    @classmethod
    def _empty_source(cls, v: Any) -> Any:
        return v or None


class Element(_CamelModel):
    """模板元素"""
    id: str | int = Field(..., description="字符串id表示尚未持久化")
    type: ElementType = ElementType.TEXT

    # 编辑器坐标（左上角原点，y向下）
    x: float = 0
    y: float = 0
    width: float = 100
    height: float = 30
    page_number: int = 1
    rotation: float = 0

    # 取值
    label: str | None = None
    field_name: str | None = None
    field_value: str | None = None
    script: str | None = None
    formula: str | None = None

    # 文本排版
    font_size: float | None = None
    alignment: Alignment = Alignment.LEFT

    metadata: Any = None

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, v: Any) -> Any:
        return v or ElementType.TEXT

    @field_validator("alignment", mode="before")
    @classmethod
    def _default_alignment(cls, v: Any) -> Any:
        return v or Alignment.LEFT

    @field_validator("page_number", "rotation", mode="before")
    @classmethod
    def _none_to_default(cls, v: Any, info) -> Any:
        if v is None:
            return 1 if info.field_name == "page_number" else 0
        return v

    @field_validator("field_value", mode="before")
    @classmethod
    def _stringify_value(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @property
    def is_persisted(self) -> bool:
        return isinstance(self.id, int)

    def table_config(self) -> TableConfig:
        """解析表格配置"""
        return TableConfig.from_metadata(self.metadata)
