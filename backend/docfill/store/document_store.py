"""
模板存储 - 文档/元素/版本的增删改查

职责：
1. 文档创建并分配整数ID
2. 元素整体替换 / 增量更新 / 删除（未持久化的字符串id换成新的整数id）
3. 版本快照：版本号按文档单调递增，列表只返回摘要
4. JSON文件持久化 + 内存缓存

存储布局：
    <storage_dir>/counters.json
    <storage_dir>/documents/<id>/document.json
    <storage_dir>/documents/<id>/versions.json

测试要点：
- test_create_document: 零元素，ID递增
- test_replace_elements_assigns_ids: 字符串id → 整数id
- test_clone_document: 标题追加 " (Clone)"
- test_version_numbers_monotonic: 版本号 1, 2, 3
- test_restore_version: 元素恢复为快照
"""

from __future__ import annotations

import json
import logging
import shutil
import threading
from pathlib import Path
from typing import Any

from ..config import get_config
from ..interfaces import DocumentNotFoundError, IDocumentStore, VersionNotFoundError
from ..models import Document, DocumentVersion, Element, FileType, VersionSummary

logger = logging.getLogger(__name__)


class DocumentStore(IDocumentStore):
    """模板存储实现"""

    def __init__(self, storage_dir: str | Path | None = None):
        self.config = get_config()
        self.storage_dir = Path(storage_dir or self.config.storage.storage_dir)
        self._documents: dict[int, Document] = {}  # 内存缓存
        self._lock = threading.RLock()

    # === 文档 ===

    def create_document(self, title: str, file_url: str, file_type: FileType | str) -> Document:
        """创建文档（零元素）"""
        with self._lock:
            document = Document(
                id=self._next_id("document"),
                title=title,
                file_url=file_url,
                file_type=FileType.normalize(file_type, file_url),
            )
            self._save(document)
        logger.info(f"文档已创建: {document.id} {title}")
        return document

    def get_document(self, document_id: int) -> Document | None:
        """获取文档"""
        # 先查缓存
        if document_id in self._documents:
            return self._documents[document_id]

        # 尝试从磁盘加载
        document = self._load(document_id)
        if document:
            self._documents[document_id] = document
        return document

    def require_document(self, document_id: int) -> Document:
        document = self.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"文档不存在: {document_id}")
        return document

    def list_documents(self) -> list[Document]:
        """列出文档（按创建时间降序）"""
        documents_dir = self.storage_dir / "documents"
        if documents_dir.exists():
            for path in documents_dir.iterdir():
                if path.is_dir() and path.name.isdigit():
                    self.get_document(int(path.name))

        documents = list(self._documents.values())
        documents.sort(key=lambda d: (d.created_at, d.id), reverse=True)
        return documents

    def delete_document(self, document_id: int) -> bool:
        """删除文档及其版本"""
        with self._lock:
            if self.get_document(document_id) is None:
                return False
            self._documents.pop(document_id, None)
            shutil.rmtree(self._document_dir(document_id), ignore_errors=True)
        logger.info(f"文档已删除: {document_id}")
        return True

    def clone_document(self, document_id: int) -> Document:
        """复制文档（底图共用，元素重新分配id）"""
        with self._lock:
            original = self.require_document(document_id)
            clone = self.create_document(
                title=f"{original.title} (Clone)",
                file_url=original.file_url,
                file_type=original.file_type,
            )
            elements = [el.model_copy(update={"id": f"clone-{el.id}"}) for el in original.elements]
            return self.replace_elements(clone.id, elements)

    # === 元素 ===

    def replace_elements(self, document_id: int, elements: list[Element]) -> Document:
        """整体替换元素集合"""
        with self._lock:
            document = self.require_document(document_id)
            return self._commit(document, self._assign_ids([], elements))

    def upsert_elements(self, document_id: int, elements: list[Element]) -> Document:
        """已持久化的元素按id更新，其余追加"""
        with self._lock:
            document = self.require_document(document_id)
            incoming = {el.id: el for el in elements if el.is_persisted}
            merged = [incoming.pop(el.id, el) for el in document.elements]
            new = [el for el in elements if not el.is_persisted or el.id in incoming]
            return self._commit(document, merged + self._assign_ids(merged, new))

    def delete_elements(self, document_id: int, element_ids: list[int]) -> Document:
        """按id删除元素"""
        with self._lock:
            document = self.require_document(document_id)
            ids = set(element_ids)
            return self._commit(document, [el for el in document.elements if el.id not in ids])

    def _commit(self, document: Document, elements: list[Element]) -> Document:
        """在副本上修改，写盘成功后才替换缓存"""
        updated = document.model_copy(update={"elements": elements})
        updated.touch()
        self._save(updated)
        return updated

    @staticmethod
    def _assign_ids(existing: list[Element], elements: list[Element]) -> list[Element]:
        """保留未冲突的整数id，其余分配新id"""
        used = {el.id for el in existing if el.is_persisted}
        kept = []
        for el in elements:
            keep = el.is_persisted and el.id not in used
            if keep:
                used.add(el.id)
            kept.append(keep)

        next_id = max(used, default=0) + 1
        result = []
        for el, keep in zip(elements, kept):
            if not keep:
                el = el.model_copy(update={"id": next_id})
                next_id += 1
            result.append(el)
        return result

    # === 版本 ===

    def create_version(
        self,
        document_id: int,
        elements: list[Element],
        change_log: str | None = None,
    ) -> DocumentVersion:
        """创建版本快照"""
        with self._lock:
            self.require_document(document_id)
            versions = self._load_versions(document_id)
            number = max((v.version_number for v in versions), default=0) + 1
            version = DocumentVersion(
                id=self._next_id("version"),
                document_id=document_id,
                version_number=number,
                change_log=change_log or f"Version {number}",
                elements=elements,
            )
            versions.append(version)
            self._save_versions(document_id, versions)
        logger.info(f"文档 {document_id} 版本已创建: v{number}")
        return version

    def list_versions(self, document_id: int) -> list[VersionSummary]:
        """列出版本摘要（版本号降序）"""
        versions = self._load_versions(document_id)
        versions.sort(key=lambda v: v.version_number, reverse=True)
        return [v.summary() for v in versions]

    def get_version(self, document_id: int, version_id: int) -> DocumentVersion | None:
        for version in self._load_versions(document_id):
            if version.id == version_id:
                return version
        return None

    def restore_version(self, document_id: int, version_id: int) -> Document:
        """把元素恢复为版本快照"""
        version = self.get_version(document_id, version_id)
        if version is None:
            raise VersionNotFoundError(f"版本不存在: 文档 {document_id} 版本 {version_id}")
        return self.replace_elements(document_id, version.elements)

    # === 持久化 ===

    def _document_dir(self, document_id: int) -> Path:
        return self.storage_dir / "documents" / str(document_id)

    def _next_id(self, kind: str) -> int:
        counters_file = self.storage_dir / "counters.json"
        counters: dict[str, int] = {}
        if counters_file.exists():
            counters = self._read_json(counters_file) or {}

        value = int(counters.get(kind, 0)) + 1
        if kind == "document":
            # 计数文件丢失时不覆盖已有目录
            while self._document_dir(value).exists():
                value += 1
        counters[kind] = value
        self._write_json(counters_file, counters)
        return value

    def _save(self, document: Document) -> None:
        self._write_json(
            self._document_dir(document.id) / "document.json",
            document.model_dump(mode="json", by_alias=True),
        )
        self._documents[document.id] = document

    def _load(self, document_id: int) -> Document | None:
        data = self._read_json(self._document_dir(document_id) / "document.json")
        if data is None:
            return None
        return Document.model_validate(data)

    def _load_versions(self, document_id: int) -> list[DocumentVersion]:
        data = self._read_json(self._document_dir(document_id) / "versions.json") or []
        return [DocumentVersion.model_validate(item) for item in data]

    def _save_versions(self, document_id: int, versions: list[DocumentVersion]) -> None:
        self._write_json(
            self._document_dir(document_id) / "versions.json",
            [v.model_dump(mode="json", by_alias=True) for v in versions],
        )

    @staticmethod
    def _write_json(path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)

    @staticmethod
    def _read_json(path: Path) -> Any:
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
