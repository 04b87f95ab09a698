"""
取值解析器 - 元素 + 数据上下文 → 最终渲染值

优先级（每一步的输出作为下一步输入）：
1. 种子值 = fieldValue，否则 label，否则空串
2. 直接查找 data[fieldName]
3. 点路径回退：取最后一个 '.' 之后的字段名再查（表格除外）
4. formula：evaluate(formula, {db, v})，非空结果覆盖
5. script：evaluate(script, {db, v})，返回 false 时元素整体不渲染
6. {{key}} 插值

测试要点：
- test_precedence_script_wins: script > formula > 字段映射 > 静态值
- test_script_false_suppresses: 脚本返回 false 时抑制
- test_dotted_fallback: table.column 回退为 column
- test_mustache_interpolation: 未定义的 key 原样保留
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ..interfaces import IScriptEvaluator, IValueResolver
from ..models import DataContext, Element, ElementType, ResolvedValue
from .evaluator import EVAL_FAILED, ScriptEvaluator, to_display_str

logger = logging.getLogger(__name__)

_MUSTACHE_RE = re.compile(r"\{\{(.*?)\}\}")

_MISSING = object()


def lookup_path(data: Any, path: str) -> Any:
    """按点路径逐级查找（dict键 / list下标），找不到返回 _MISSING"""
    current = data
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def interpolate(text: str, data: DataContext) -> str:
    """替换 {{key}}；未定义的 key 原样保留（去除空白）"""
    if "{{" not in text:
        return text

    def repl(m: re.Match) -> str:
        key = m.group(1).strip()
        if key in data:
            return to_display_str(data[key])
        nested = lookup_path(data, key) if "." in key else _MISSING
        if nested is not _MISSING:
            return to_display_str(nested)
        return "{{" + key + "}}"

    return _MUSTACHE_RE.sub(repl, text)


class ValueResolver(IValueResolver):
    """取值解析器实现（不抛异常）"""

    def __init__(self, evaluator: IScriptEvaluator | None = None):
        self.evaluator = evaluator or ScriptEvaluator()

    def resolve(self, element: Element, data: DataContext) -> ResolvedValue:
        data = data or {}
        value = element.field_value or element.label or ""

        # 字段映射
        mapped = self._lookup_field(element, data)
        if mapped is not _MISSING:
            value = to_display_str(mapped)

        # 公式
        if element.formula:
            result = self.evaluator.evaluate(element.formula, self._bindings(data, value))
            if result is not None:
                value = to_display_str(result)

        # 脚本（条件/格式化）
        if element.script:
            result = self.evaluator.evaluate(element.script, self._bindings(data, value))
            if result is False:
                logger.debug(f"元素 {element.id} 被脚本抑制")
                return ResolvedValue(value="", suppressed=True)
            if result is EVAL_FAILED:
                value = ""
            elif result is not None and result is not True:
                value = to_display_str(result)

        return ResolvedValue(value=interpolate(value, data))

    @staticmethod
    def _lookup_field(element: Element, data: DataContext) -> Any:
        field_name = element.field_name
        if not field_name:
            return _MISSING
        if field_name in data:
            return data[field_name]
        if "." in field_name and element.type != ElementType.TABLE:
            column = field_name.rsplit(".", 1)[-1]
            if column in data:
                return data[column]
        return _MISSING

    @staticmethod
    def _bindings(data: DataContext, value: str) -> dict[str, Any]:
        return {"db": data, "v": value, "value": value}
