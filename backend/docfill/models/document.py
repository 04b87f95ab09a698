"""
文档模型 - 模板文档、底图与版本快照
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .element import Element

# 编辑器/上传接口常见的图片扩展名
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")


class FileType(str, Enum):
    """底图类型"""
    PDF = "pdf"
    IMAGE = "image"

    @classmethod
    def normalize(cls, value: Any, file_url: str | None = None) -> FileType:
        """
        归一化文件类型

        上传接口记录的是MIME（application/pdf, image/png），
        旧数据直接存 pdf/image；无法判断时按扩展名推断。
        """
        if isinstance(value, FileType):
            return value
        text = str(value or "").strip().lower()
        if text in ("pdf", "application/pdf"):
            return cls.PDF
        if text == "image" or text.startswith("image/"):
            return cls.IMAGE
        if file_url and file_url.lower().endswith(IMAGE_EXTENSIONS):
            return cls.IMAGE
        return cls.PDF


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Background(_CamelModel):
    """底图引用"""
    file_url: str
    file_type: FileType = FileType.PDF

    @field_validator("file_type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any, info) -> FileType:
        return FileType.normalize(v, info.data.get("file_url"))


class Document(_CamelModel):
    """模板文档"""
    id: int
    title: str
    file_url: str
    file_type: FileType = FileType.PDF
    elements: list[Element] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("file_type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any, info) -> FileType:
        return FileType.normalize(v, info.data.get("file_url"))

    @property
    def background(self) -> Background:
        return Background(file_url=self.file_url, file_type=self.file_type)

    def touch(self) -> None:
        self.updated_at = datetime.now()


class VersionSummary(_CamelModel):
    """版本摘要（列表接口不返回元素）"""
    id: int
    document_id: int
    version_number: int
    change_log: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


class DocumentVersion(VersionSummary):
    """版本快照（完整元素列表）"""
    elements: list[Element] = Field(default_factory=list)

    def summary(self) -> VersionSummary:
        return VersionSummary(**self.model_dump(exclude={"elements"}))
