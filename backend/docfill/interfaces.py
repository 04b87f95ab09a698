"""
模块接口契约 - 定义各模块的抽象接口

设计原则：
1. 模块间通过接口通信，不直接依赖具体实现
2. 每个接口定义清晰的输入输出类型
3. 便于单元测试和mock替换

使用方式：
    from docfill.interfaces import IAssetLoader

    class MyAssetLoader(IAssetLoader):
        def load(self, reference: str) -> bytes | None:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import (
        Background,
        DataContext,
        Document,
        DocumentVersion,
        Element,
        FileType,
        GeneratedDocument,
        ResolvedValue,
        VersionSummary,
    )


# ============================================================================
# 生成引擎接口
# ============================================================================

class IScriptEvaluator(ABC):
    """脚本求值器接口 - 在数据上下文中执行模板作者编写的片段"""

    @abstractmethod
    def evaluate(self, snippet: str, bindings: dict[str, Any]) -> Any:
        """
        执行脚本片段

        Args:
            snippet: 表达式或语句序列
            bindings: 可见的变量绑定（如 db / v）

        Returns:
            str / 数值 / bool / None，执行失败时返回 EVAL_FAILED 哨兵
            （不抛出异常）
        """
        ...


class IValueResolver(ABC):
    """取值解析器接口 - 元素 + 数据上下文 → 最终渲染值"""

    @abstractmethod
    def resolve(self, element: Element, data: DataContext) -> ResolvedValue:
        """
        按固定优先级解析元素值

        Returns:
            ResolvedValue（suppressed=True 表示脚本返回 false，元素不渲染）
        """
        ...


class IAssetLoader(ABC):
    """资源加载器接口 - data URI / 远程URL / 本地路径"""

    @abstractmethod
    def load(self, reference: str) -> bytes | None:
        """
        读取资源字节

        Returns:
            资源字节；找不到时返回 None

        Raises:
            InvalidReferenceError: data URI 格式错误
            AssetLoadError: 本地读取出现非"不存在"类错误
        """
        ...


class IPdfGenerator(ABC):
    """PDF生成器接口"""

    @abstractmethod
    def generate(
        self,
        background: Background,
        elements: list[Element],
        data: DataContext,
    ) -> GeneratedDocument:
        """
        生成填充后的PDF

        Args:
            background: 底图（PDF或图片）
            elements: 元素列表（按输入顺序绘制）
            data: 数据上下文

        Returns:
            生成结果（PDF字节 + 元素渲染报告）

        Raises:
            FontLoadError: 字体缺失（部署问题）
            GenerationError: 序列化失败
        """
        ...


# ============================================================================
# 存储协作者接口
# ============================================================================

class IDocumentStore(ABC):
    """模板存储接口 - 文档/元素/版本的增删改查"""

    @abstractmethod
    def create_document(self, title: str, file_url: str, file_type: FileType | str) -> Document:
        """创建文档（零元素）"""
        ...

    @abstractmethod
    def get_document(self, document_id: int) -> Document | None:
        """获取文档（含元素）"""
        ...

    @abstractmethod
    def list_documents(self) -> list[Document]:
        """列出文档（按创建时间降序）"""
        ...

    @abstractmethod
    def replace_elements(self, document_id: int, elements: list[Element]) -> Document:
        """整体替换元素集合"""
        ...

    @abstractmethod
    def create_version(
        self,
        document_id: int,
        elements: list[Element],
        change_log: str | None = None,
    ) -> DocumentVersion:
        """创建版本快照（版本号单调递增）"""
        ...

    @abstractmethod
    def list_versions(self, document_id: int) -> list[VersionSummary]:
        """列出版本摘要（不含元素）"""
        ...


class IAssetStore(ABC):
    """上传存储接口"""

    @abstractmethod
    def save_upload(self, filename: str, data: bytes) -> str:
        """保存上传文件，返回可访问的URL路径"""
        ...


# ============================================================================
# 异常定义
# ============================================================================

class DocfillError(Exception):
    """基础异常"""
    pass


class EvaluationError(DocfillError):
    """脚本解析/执行错误（由求值器内部吸收）"""
    pass


class InvalidReferenceError(DocfillError):
    """资源引用格式错误"""
    pass


class AssetLoadError(DocfillError):
    """资源读取错误"""
    pass


class UnsupportedImageError(DocfillError):
    """无法识别的图片格式"""
    pass


class FontLoadError(DocfillError):
    """字体加载错误（致命）"""
    pass


class GenerationError(DocfillError):
    """生成错误"""
    pass


class DocumentNotFoundError(DocfillError):
    """模板不存在"""
    pass


class VersionNotFoundError(DocfillError):
    """版本不存在"""
    pass


class InvalidDataContextError(DocfillError):
    """数据上下文非法"""
    pass
