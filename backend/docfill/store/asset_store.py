"""
上传存储 - 底图/图片素材落盘

文件保存到 <asset_root>/<upload_subdir>/，返回的URL路径（/uploads/...）
可直接作为底图 file_url 或图片元素的值，由资源加载器按本地路径读取。
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path

from ..config import get_config
from ..interfaces import IAssetStore
from ..models import Document, FileType
from .document_store import DocumentStore

logger = logging.getLogger(__name__)


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


class AssetStore(IAssetStore):
    """上传存储实现"""

    def __init__(self, upload_dir: str | Path | None = None, url_prefix: str | None = None):
        config = get_config()
        self.upload_dir = Path(upload_dir or config.upload_dir)
        self.url_prefix = url_prefix or f"/{config.assets.upload_subdir}"

    def save_upload(self, filename: str, data: bytes) -> str:
        """保存底图上传（空白替换为下划线）"""
        safe = re.sub(r"\s", "_", Path(filename).name)
        return self._write(f"{_timestamp_ms()}_{safe}", data)

    def save_asset(self, filename: str, data: bytes) -> str:
        """保存图片素材（只保留字母数字和点）"""
        safe = re.sub(r"[^a-zA-Z0-9.]", "_", Path(filename).name)
        return self._write(f"asset_{_timestamp_ms()}_{safe}", data)

    def _write(self, name: str, data: bytes) -> str:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        (self.upload_dir / name).write_bytes(data)
        url = f"{self.url_prefix.rstrip('/')}/{name}"
        logger.info(f"上传已保存: {url} ({len(data)} bytes)")
        return url


def create_document_from_upload(
    store: DocumentStore,
    assets: AssetStore,
    filename: str,
    data: bytes,
    content_type: str | None = None,
) -> Document:
    """保存上传文件并创建模板文档（标题为原文件名）"""
    file_url = assets.save_upload(filename, data)
    return store.create_document(
        title=filename,
        file_url=file_url,
        file_type=FileType.normalize(content_type, file_url),
    )
