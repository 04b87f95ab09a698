"""
表格渲染 - 绑定数组逐行绘制

职责：
1. 绑定数组：metadata.dataSource 优先，否则取 fieldName 的第一段，在数据上下文中查找数组
2. 列值解析：index_plus_1 → 行号；列脚本 → evaluate；否则按字段路径取值
3. 先画表头，再逐行向下；超出元素高度的行不画（不分页、不撑高）
4. showLines 为真时画浅灰 1pt 边框/分隔线

字段路径约定：列的 field 相对于行记录；
若以绑定键开头（如 prescription_items.qty），先去掉该前缀。

测试要点：
- test_index_plus_1: [1, "X"], [2, "Y"]
- test_rows_clipped_by_height: 行数受元素高度限制
- test_column_script: 列脚本按行求值
- test_non_array_binding: 非数组绑定视为空表
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..config import get_config
from ..interfaces import IScriptEvaluator
from ..models import INDEX_PLUS_1, ColumnDef, DataContext, Element, TableConfig
from .evaluator import to_display_str
from .resolver import is_missing, lookup_path

if TYPE_CHECKING:
    from reportlab.pdfgen.canvas import Canvas

    from ..config import RuntimeConfig
    from .text_shaper import TextShaper

logger = logging.getLogger(__name__)


class TableRenderer:
    """表格子渲染器"""

    def __init__(
        self,
        evaluator: IScriptEvaluator,
        shaper: TextShaper | None = None,
        config: RuntimeConfig | None = None,
    ):
        self.evaluator = evaluator
        self.shaper = shaper
        self.config = config or get_config()

    # === 数据 ===

    def binding_key(self, element: Element, table: TableConfig) -> str | None:
        if table.data_source:
            return table.data_source
        if element.field_name:
            return element.field_name.split(".", 1)[0]
        return None

    def bound_records(self, element: Element, table: TableConfig, data: DataContext) -> list[Any]:
        key = self.binding_key(element, table)
        records = (data or {}).get(key) if key else None
        if not isinstance(records, list):
            if key:
                logger.debug(f"表格 {element.id} 绑定 {key!r} 不是数组，按空表处理")
            return []
        return records

    def row_height(self, table: TableConfig) -> float:
        return table.row_height or self.config.render.table_row_height

    def max_rows(self, element: Element, table: TableConfig) -> int:
        """元素高度内可容纳的数据行数（表头占一行）"""
        rows = int((element.height + 1e-6) // self.row_height(table)) - 1
        return max(rows, 0)

    def build_rows(
        self,
        element: Element,
        data: DataContext,
        table: TableConfig | None = None,
    ) -> list[list[str]]:
        """解析单元格值（不含表头，已按高度截断）"""
        table = table or element.table_config()
        key = self.binding_key(element, table)
        records = self.bound_records(element, table, data)[: self.max_rows(element, table)]
        return [
            [self.cell_value(col, record, index, key, data) for col in table.columns]
            for index, record in enumerate(records)
        ]

    def cell_value(
        self,
        column: ColumnDef,
        record: Any,
        index: int,
        key: str | None,
        data: DataContext,
    ) -> str:
        if column.field == INDEX_PLUS_1:
            return str(index + 1)

        raw = self._field_value(column.field, record, key)
        if column.script:
            result = self.evaluator.evaluate(
                column.script,
                {"row": record, "v": raw, "value": raw, "index": index, "db": data},
            )
            return to_display_str(result)
        return to_display_str(raw)

    @staticmethod
    def _field_value(field: str, record: Any, key: str | None) -> Any:
        if not field or not isinstance(record, dict):
            return None
        if key and field.startswith(key + "."):
            field = field[len(key) + 1:]
        if field in record:
            return record[field]
        value = lookup_path(record, field)
        return None if is_missing(value) else value

    # === 布局 ===

    def column_layout(self, element: Element, table: TableConfig) -> list[tuple[ColumnDef, float, float]]:
        """(列, 左边x, 宽度)；左边超出元素右边界的列忽略"""
        layout = []
        left = 0.0
        count = len(table.columns)
        for col in table.columns:
            width = element.width * col.width_percent(count) / 100.0
            if left >= element.width:
                break
            layout.append((col, left, width))
            left += width
        return layout

    # === 绘制 ===

    def render(
        self,
        canvas: Canvas,
        element: Element,
        data: DataContext,
        font_size: float,
    ) -> int:
        """
        在当前坐标系绘制表格（原点为表格左上角，y向上为正）

        Returns:
            绘制的数据行数
        """
        table = element.table_config()
        if not table.columns:
            return 0

        layout = self.column_layout(element, table)
        rows = self.build_rows(element, data, table)
        row_height = self.row_height(table)
        padding = self.config.render.table_cell_padding

        canvas.setFillGray(0)
        for row_index, cells in enumerate([[c.header for c in table.columns]] + rows):
            baseline = -row_index * row_height - row_height / 2 - font_size * 0.35
            for (col, left, _), text in zip(layout, cells):
                if text:
                    self._draw_text(canvas, text, left + padding, baseline, font_size)

        if table.show_lines and layout:
            self._draw_grid(canvas, layout, len(rows), row_height)
        return len(rows)

    def _draw_text(self, canvas: Canvas, text: str, x: float, y: float, font_size: float) -> None:
        if self.shaper is not None:
            self.shaper.draw(canvas, text, x, y, font_size)
        else:
            canvas.setFont("Helvetica", font_size)
            canvas.drawString(x, y, text)

    def _draw_grid(
        self,
        canvas: Canvas,
        layout: list[tuple[ColumnDef, float, float]],
        row_count: int,
        row_height: float,
    ) -> None:
        render = self.config.render
        _, last_left, last_width = layout[-1]
        table_width = last_left + last_width
        total_height = (row_count + 1) * row_height

        canvas.setStrokeGray(render.grid_gray)
        canvas.setLineWidth(render.grid_line_width)
        canvas.rect(0, -total_height, table_width, total_height, stroke=1, fill=0)
        for i in range(1, row_count + 1):
            canvas.line(0, -i * row_height, table_width, -i * row_height)
        for _, left, _ in layout[1:]:
            canvas.line(left, 0, left, -total_height)
