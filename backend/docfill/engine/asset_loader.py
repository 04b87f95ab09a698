"""
资源加载器 - 读取图片/底图字节

职责：
1. 按前缀分派：data:image/... → base64解码；http(s):// → 远程下载；/... → 本地资源目录
2. 找不到统一返回 None，调用方静默跳过（不中断生成）
3. 图片格式按扩展名/MIME试探，失败后再试另一种格式

依赖：
- httpx: 远程下载（浏览器UA，部分站点拒绝默认UA）
- Pillow: 图片解码

测试要点：
- test_load_data_uri: base64 data URI
- test_data_uri_without_comma: 缺少逗号 → InvalidReferenceError
- test_remote_non_2xx: 非2xx → None
- test_local_missing: 本地文件不存在 → None
- test_decode_fallback_format: 扩展名与内容不符时换格式重试
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from pathlib import Path
from urllib.parse import unquote_to_bytes

import httpx
from PIL import Image

from ..config import get_config
from ..interfaces import AssetLoadError, IAssetLoader, InvalidReferenceError, UnsupportedImageError

logger = logging.getLogger(__name__)

_REMOTE_PREFIXES = ("http://", "https://")
_SUPPORTED_FORMATS = ("PNG", "JPEG")


def is_image_reference(value: str | None) -> bool:
    """是否为可加载的图片引用"""
    if not value:
        return False
    return value.startswith("data:image/") or value.startswith(_REMOTE_PREFIXES) or value.startswith("/")


def guess_format(reference: str) -> str:
    """根据MIME/扩展名推断首选格式（无法判断时优先JPEG）"""
    ref = reference.lower()
    if ref.startswith("data:image/"):
        mime = ref[len("data:image/"):].split(";", 1)[0].split(",", 1)[0]
        return "PNG" if mime == "png" else "JPEG"
    path = ref.split("?", 1)[0].split("#", 1)[0]
    return "PNG" if path.endswith(".png") else "JPEG"


def decode_image(data: bytes, reference: str = "") -> Image.Image:
    """解码图片：先试推断格式，再试另一种支持的格式"""
    first = guess_format(reference)
    order = [first] + [fmt for fmt in _SUPPORTED_FORMATS if fmt != first]
    errors = []
    for fmt in order:
        try:
            image = Image.open(io.BytesIO(data), formats=[fmt])
            image.load()
            return image
        except (OSError, SyntaxError, ValueError) as e:
            errors.append(f"{fmt}: {e}")
    raise UnsupportedImageError(f"无法识别的图片格式: {reference[:60]} ({'; '.join(errors)})")


class AssetLoader(IAssetLoader):
    """资源加载器实现"""

    def __init__(
        self,
        asset_root: str | Path | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        config = get_config()
        self.asset_root = Path(asset_root or config.assets.asset_root)
        self.user_agent = user_agent or config.assets.user_agent
        self.timeout = timeout or config.assets.fetch_timeout_sec
        self.client = client

    def load(self, reference: str) -> bytes | None:
        """读取资源字节；找不到返回 None"""
        if not reference:
            return None
        if reference.startswith("data:image/"):
            return self._decode_data_uri(reference)
        if reference.startswith(_REMOTE_PREFIXES):
            return self._fetch(reference)
        if reference.startswith("/"):
            return self._read_local(reference)
        return None

    def _decode_data_uri(self, reference: str) -> bytes:
        header, sep, payload = reference.partition(",")
        if not sep:
            raise InvalidReferenceError(f"data URI 缺少逗号: {reference[:40]}")
        if header.endswith(";base64"):
            try:
                return base64.b64decode(payload)
            except (binascii.Error, ValueError) as e:
                raise InvalidReferenceError(f"data URI base64 解码失败: {e}") from e
        return unquote_to_bytes(payload)

    def _fetch(self, url: str) -> bytes | None:
        headers = {"User-Agent": self.user_agent}
        try:
            if self.client is not None:
                response = self.client.get(url, headers=headers, follow_redirects=True)
            else:
                response = httpx.get(url, headers=headers, timeout=self.timeout, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.warning(f"远程图片下载失败: {url}: {e}")
            return None

        if not response.is_success:
            logger.warning(f"远程图片下载失败: {url}: HTTP {response.status_code}")
            return None
        return response.content

    def _read_local(self, reference: str) -> bytes | None:
        relative = re.sub(r"/+", "/", reference).lstrip("/")
        root = self.asset_root.resolve()
        path = (root / relative).resolve()
        if not path.is_relative_to(root):
            logger.warning(f"本地资源路径越界: {reference}")
            return None

        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            logger.warning(f"本地资源不存在: {path}")
            return None
        except OSError as e:
            raise AssetLoadError(f"本地资源读取失败: {path}: {e}") from e
