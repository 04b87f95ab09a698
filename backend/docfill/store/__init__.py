"""
存储协作者 - 模板文档与上传文件
"""

from .asset_store import AssetStore, create_document_from_upload
from .document_store import DocumentStore

__all__ = [
    "DocumentStore",
    "AssetStore",
    "create_document_from_upload",
]
