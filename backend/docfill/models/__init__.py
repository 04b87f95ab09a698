"""
数据模型层 - 定义系统核心数据结构

所有模块通过这些模型交互，实现解耦：
- Element / TableConfig: 模板元素与表格配置
- Document / DocumentVersion: 模板文档与版本快照
- Background: 底图引用
- ElementOutcome / GenerationReport: 渲染结局与生成报告
"""

from .document import Background, Document, DocumentVersion, FileType, VersionSummary
from .element import INDEX_PLUS_1, Alignment, ColumnDef, Element, ElementType, TableConfig
from .render import (
    DataContext,
    ElementOutcome,
    GeneratedDocument,
    GenerationReport,
    RenderStatus,
    ResolvedValue,
    SkipReason,
)

__all__ = [
    "Element",
    "ElementType",
    "Alignment",
    "ColumnDef",
    "TableConfig",
    "INDEX_PLUS_1",
    "Document",
    "DocumentVersion",
    "VersionSummary",
    "Background",
    "FileType",
    "DataContext",
    "ResolvedValue",
    "RenderStatus",
    "SkipReason",
    "ElementOutcome",
    "GenerationReport",
    "GeneratedDocument",
]
