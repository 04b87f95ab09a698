"""
生成服务 - Generate(templateId, dataContext) → PDF

职责：
1. 校验数据上下文（必须是JSON对象）
2. 按模板id加载文档（底图 + 元素）
3. 调用生成器，未预期的失败统一包装为 GenerationError

测试要点：
- test_parse_data_context_rejects_array: 顶层不是对象 → InvalidDataContextError
- test_generate_unknown_template: 模板不存在 → DocumentNotFoundError
- test_generate_filename: generated_<id>.pdf
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .interfaces import (
    DocfillError,
    DocumentNotFoundError,
    GenerationError,
    IPdfGenerator,
    InvalidDataContextError,
)
from .models import DataContext, GeneratedDocument
from .store import DocumentStore

logger = logging.getLogger(__name__)


def parse_data_context(raw: Any) -> DataContext:
    """数据上下文：dict / JSON文本 / JSON字节，解析结果必须是对象"""
    if raw is None:
        return {}
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidDataContextError(f"数据上下文不是UTF-8文本: {e}") from e
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidDataContextError(f"数据上下文不是合法JSON: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidDataContextError(f"数据上下文必须是JSON对象，实际为 {type(raw).__name__}")
    return raw


class GenerationService:
    """模板生成服务"""

    def __init__(
        self,
        store: DocumentStore | None = None,
        generator: IPdfGenerator | None = None,
    ):
        self.store = store or DocumentStore()
        if generator is None:
            from .engine import PdfGenerator
            generator = PdfGenerator()
        self.generator = generator

    def generate(self, template_id: int, data_context: Any) -> GeneratedDocument:
        """按模板生成PDF"""
        data = parse_data_context(data_context)

        document = self.store.get_document(template_id)
        if document is None:
            raise DocumentNotFoundError(f"模板不存在: {template_id}")

        logger.info(f"开始生成: 模板 {template_id} ({len(document.elements)} 个元素)")
        try:
            result = self.generator.generate(document.background, document.elements, data)
        except DocfillError:
            raise
        except Exception as e:
            logger.exception(f"模板 {template_id} 生成失败")
            raise GenerationError(f"模板 {template_id} 生成失败: {e}") from e

        result.filename = f"generated_{template_id}.pdf"
        return result
