"""
资源加载器单元测试

每个模块完成后必须运行：pytest tests/unit/test_asset_loader.py -v
"""

import base64
from pathlib import Path

import httpx
import pytest

from docfill.engine import AssetLoader, decode_image, is_image_reference
from docfill.engine.asset_loader import guess_format
from docfill.interfaces import AssetLoadError, InvalidReferenceError, UnsupportedImageError


def _mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestDataUri:
    """data URI 测试"""

    def test_load_data_uri(self, png_bytes: bytes):
        """测试 base64 data URI"""
        uri = "data:image/png;base64," + base64.b64encode(png_bytes).decode()
        assert AssetLoader().load(uri) == png_bytes

    def test_data_uri_without_comma(self):
        """测试缺少逗号 → InvalidReferenceError"""
        with pytest.raises(InvalidReferenceError):
            AssetLoader().load("data:image/png;base64")

    def test_data_uri_bad_base64(self):
        """测试 base64 损坏 → InvalidReferenceError"""
        with pytest.raises(InvalidReferenceError):
            AssetLoader().load("data:image/png;base64,abc")


class TestRemote:
    """远程下载测试"""

    def test_remote_success_sends_user_agent(self, png_bytes: bytes):
        """测试下载成功并携带浏览器UA"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers.get("user-agent")
            return httpx.Response(200, content=png_bytes)

        loader = AssetLoader(user_agent="Mozilla/5.0 test", client=_mock_client(handler))
        assert loader.load("https://example.com/logo.png") == png_bytes
        assert seen["ua"] == "Mozilla/5.0 test"

    def test_remote_non_2xx(self):
        """测试非2xx → None"""
        loader = AssetLoader(client=_mock_client(lambda request: httpx.Response(404)))
        assert loader.load("https://example.com/missing.png") is None

    def test_remote_network_error(self):
        """测试网络错误 → None"""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        loader = AssetLoader(client=_mock_client(handler))
        assert loader.load("http://unreachable.invalid/a.png") is None


class TestLocal:
    """本地资源测试"""

    def test_local_file(self, asset_root: Path, png_bytes: bytes):
        """测试读取资源目录下的文件"""
        (asset_root / "uploads" / "sig.png").write_bytes(png_bytes)
        loader = AssetLoader()
        assert loader.load("/uploads/sig.png") == png_bytes
        assert loader.load("//uploads//sig.png") == png_bytes

    def test_local_missing(self):
        """测试本地文件不存在 → None"""
        assert AssetLoader().load("/uploads/nope.png") is None

    def test_local_read_error(self, asset_root: Path, png_bytes: bytes, monkeypatch):
        """测试本地读取出现非“不存在”类错误 → AssetLoadError"""
        (asset_root / "uploads" / "locked.png").write_bytes(png_bytes)

        def deny(self):
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr(Path, "read_bytes", deny)
        with pytest.raises(AssetLoadError):
            AssetLoader().load("/uploads/locked.png")

    def test_local_outside_root(self, asset_root: Path):
        """测试路径越界 → None"""
        (asset_root.parent / "secret.txt").write_text("x")
        assert AssetLoader().load("/../secret.txt") is None

    def test_unknown_reference(self):
        """测试无法识别的引用 → None"""
        assert AssetLoader().load("uploads/sig.png") is None
        assert AssetLoader().load("") is None


class TestDecode:
    """图片解码测试"""

    @pytest.mark.parametrize(
        "reference,expected",
        [
            ("/uploads/a.png", "PNG"),
            ("/uploads/a.PNG?v=2", "PNG"),
            ("/uploads/a.jpg", "JPEG"),
            ("data:image/png;base64,xx", "PNG"),
            ("data:image/jpeg;base64,xx", "JPEG"),
            ("https://example.com/image", "JPEG"),
        ],
    )
    def test_guess_format(self, reference: str, expected: str):
        """测试按扩展名/MIME推断格式"""
        assert guess_format(reference) == expected

    def test_decode_matching_format(self, jpeg_bytes: bytes):
        """测试按推断格式解码"""
        assert decode_image(jpeg_bytes, "/a.jpg").format == "JPEG"

    def test_decode_fallback_format(self, png_bytes: bytes):
        """测试扩展名与内容不符时换格式重试"""
        image = decode_image(png_bytes, "/uploads/photo.jpg")
        assert image.format == "PNG"
        assert image.size == (8, 6)

    def test_decode_unsupported(self):
        """测试无法识别的内容 → UnsupportedImageError"""
        with pytest.raises(UnsupportedImageError):
            decode_image(b"<html>not an image</html>", "/a.png")

    def test_is_image_reference(self):
        """测试图片引用判断"""
        assert is_image_reference("data:image/png;base64,xx")
        assert is_image_reference("https://example.com/a.png")
        assert is_image_reference("/uploads/a.png")
        assert not is_image_reference("Somchai")
        assert not is_image_reference("")
        assert not is_image_reference(None)
