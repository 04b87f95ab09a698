"""
pytest 配置与公共 fixtures

使用方式：
    def test_something(runtime_config, font_set):
        assert runtime_config.render.default_page_height == 842

所有测试自动使用临时目录下的运行期配置（资源根目录/存储目录互不干扰），
字体使用 reportlab 自带的 Vera 字体。
"""

from __future__ import annotations

import io
from pathlib import Path

import pytest
import reportlab
from PIL import Image
from reportlab.pdfgen.canvas import Canvas

from docfill.config import RuntimeConfig
from docfill.config.runtime_config import AssetConfig, FontConfig, StorageConfig
from docfill.engine import FontSet, ScriptEvaluator, load_font_set
from docfill.models import Element

FONTS_DIR = Path(reportlab.__file__).resolve().parent / "fonts"
PRIMARY_FONT = FONTS_DIR / "Vera.ttf"
SYMBOL_FONT = FONTS_DIR / "VeraBd.ttf"


# ============================================================================
# 配置 Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def runtime_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> RuntimeConfig:
    """运行期配置（临时目录，替换全局配置）"""
    config = RuntimeConfig(
        fonts=FontConfig(primary_path=str(PRIMARY_FONT), symbol_path=str(SYMBOL_FONT)),
        assets=AssetConfig(asset_root=str(tmp_path / "public")),
        storage=StorageConfig(storage_dir=tmp_path / "storage"),
    )
    config.ensure_dirs()
    monkeypatch.setattr("docfill.config.runtime_config._config", config)
    return config


@pytest.fixture
def asset_root(runtime_config: RuntimeConfig) -> Path:
    """资源根目录（本地路径 /... 相对于此目录）"""
    return runtime_config.asset_root


@pytest.fixture
def font_paths() -> tuple[Path, Path]:
    """(主字体, 符号字体) 路径"""
    return PRIMARY_FONT, SYMBOL_FONT


@pytest.fixture
def font_set(font_paths: tuple[Path, Path]) -> FontSet:
    """测试字体集合"""
    return load_font_set(*font_paths)


@pytest.fixture
def evaluator() -> ScriptEvaluator:
    return ScriptEvaluator()


# ============================================================================
# 数据 Fixtures
# ============================================================================

@pytest.fixture
def sample_data() -> dict:
    """示例数据上下文"""
    return {
        "patient_name": "Somchai",
        "hn": "HN-0001",
        "age": 42,
        "temperature": 37.5,
        "allergy": None,
        "doctor": {"name": "Dr. Lee", "license": "MD-77"},
        "prescription_items": [
            {"name": "Paracetamol", "qty": 10, "unit": "tab"},
            {"name": "Amoxicillin", "qty": 21, "unit": "cap"},
        ],
    }


@pytest.fixture
def text_element() -> Element:
    """示例文本元素（editor坐标 50,100）"""
    return Element(id=1, type="text", x=50, y=100, width=200, height=20, fieldName="patient_name")


# ============================================================================
# 文件 Fixtures
# ============================================================================

def make_image_bytes(fmt: str = "PNG", size: tuple[int, int] = (8, 6), color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_pdf_bytes(pages: int = 1, size: tuple[float, float] = (595, 842)) -> bytes:
    buffer = io.BytesIO()
    canvas = Canvas(buffer, pagesize=size, invariant=1)
    for i in range(pages):
        canvas.drawString(20, 20, f"background page {i + 1}")
        canvas.showPage()
    canvas.save()
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def background_pdf(asset_root: Path) -> str:
    """两页PDF底图，返回可加载的URL路径"""
    path = asset_root / "uploads" / "form.pdf"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_pdf_bytes(pages=2))
    return "/uploads/form.pdf"


@pytest.fixture
def image_factory():
    """图片字节生成器: image_factory("JPEG", (w, h))"""
    return make_image_bytes


@pytest.fixture
def pdf_factory():
    """PDF字节生成器: pdf_factory(pages, (w, h))"""
    return make_pdf_bytes
