"""
运行期配置 - 读取 config/runtime.yaml

职责：
- 加载字体/资源/渲染/脚本/存储等运行参数
- 提供环境变量覆盖机制（DOCFILL_ 前缀）
- 类型安全的配置访问
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

DEFAULT_CONFIG_PATH = Path("config/runtime.yaml")


class FontConfig(BaseModel):
    """字体配置（固定两级回退链）"""

    primary_path: str = "public/fonts/NotoSansThai-Regular.ttf"
    symbol_path: str = "public/fonts/NotoSansSymbols2-Regular.ttf"
    symbol_threshold: int = 0x2000  # 码点 >= 阈值走符号字体


class AssetConfig(BaseModel):
    """资源加载配置"""

    asset_root: str = "public"
    upload_subdir: str = "uploads"
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    fetch_timeout_sec: float = 10.0


class RenderConfig(BaseModel):
    """渲染配置"""

    default_font_size: float = 14
    default_page_width: float = 595
    default_page_height: float = 842
    table_row_height: float = 22
    table_cell_padding: float = 5
    grid_gray: float = 0.8
    grid_line_width: float = 1.0
    line_spacing: float = 1.2
    invariant: bool = True  # 固定PDF元数据，保证同输入同输出


class ScriptingConfig(BaseModel):
    """脚本沙箱配置"""

    max_steps: int = 10000
    max_string_length: int = 100000


class StorageConfig(BaseModel):
    """模板存储配置"""

    storage_dir: Path = Path("storage")


class LoggingConfig(BaseModel):
    """日志配置"""

    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class RuntimeConfig(BaseSettings):
    """运行期配置（支持环境变量覆盖）"""

    fonts: FontConfig = Field(default_factory=FontConfig)
    assets: AssetConfig = Field(default_factory=AssetConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    scripting: ScriptingConfig = Field(default_factory=ScriptingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "env_prefix": "DOCFILL_",
        "env_nested_delimiter": "__",
        "arbitrary_types_allowed": True,
    }

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> RuntimeConfig:
        """从YAML文件加载配置"""
        path = Path(yaml_path)
        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        runtime_opts = data.get("runtime_options", {})

        config = cls(
            fonts=FontConfig(**cls._extract(runtime_opts, "fonts")),
            assets=AssetConfig(**cls._extract(runtime_opts, "assets")),
            render=RenderConfig(**cls._extract(runtime_opts, "render")),
            scripting=ScriptingConfig(**cls._extract(runtime_opts, "scripting")),
            storage=StorageConfig(**cls._extract(runtime_opts, "storage")),
            logging=LoggingConfig(**cls._extract(runtime_opts, "logging")),
        )

        config._resolve_paths(base_dir=path.parent)
        return config

    @staticmethod
    def _extract(data: dict[str, Any], key: str) -> dict[str, Any]:
        """提取并展平配置"""
        section = data.get(key) or {}
        result = {}
        for k, v in section.items():
            if isinstance(v, dict) and "default" in v:
                result[k] = v["default"]
            elif not isinstance(v, dict):
                result[k] = v
        return result

    def _resolve_paths(self, base_dir: Path) -> None:
        """解析相对路径配置为绝对路径（基于配置文件所在目录）"""
        for attr in ("primary_path", "symbol_path"):
            font_path = Path(getattr(self.fonts, attr))
            if not font_path.is_absolute():
                setattr(self.fonts, attr, str((base_dir / font_path).resolve()))
        asset_root = Path(self.assets.asset_root)
        if not asset_root.is_absolute():
            self.assets.asset_root = str((base_dir / asset_root).resolve())
        if not self.storage.storage_dir.is_absolute():
            self.storage.storage_dir = (base_dir / self.storage.storage_dir).resolve()

    @property
    def asset_root(self) -> Path:
        return Path(self.assets.asset_root)

    @property
    def upload_dir(self) -> Path:
        """上传文件落盘目录"""
        return self.asset_root / self.assets.upload_subdir

    def get_document_dir(self, document_id: int) -> Path:
        """获取模板存储目录"""
        return self.storage.storage_dir / "documents" / str(document_id)

    def ensure_dirs(self) -> None:
        """确保必要目录存在"""
        self.storage.storage_dir.mkdir(parents=True, exist_ok=True)
        (self.storage.storage_dir / "documents").mkdir(exist_ok=True)
        self.upload_dir.mkdir(parents=True, exist_ok=True)


def setup_logging(config: RuntimeConfig) -> None:
    """按配置初始化根日志"""
    logging.basicConfig(
        level=getattr(logging, config.logging.log_level.upper(), logging.INFO),
        format=config.logging.log_format,
    )


# 全局配置实例
_config: RuntimeConfig | None = None


def get_config() -> RuntimeConfig:
    """获取全局配置（惰性加载）"""
    global _config
    if _config is None:
        _config = RuntimeConfig.from_yaml(DEFAULT_CONFIG_PATH)
    return _config


def reload_config(yaml_path: str | Path | None = None) -> RuntimeConfig:
    """重新加载配置"""
    global _config
    path = yaml_path or DEFAULT_CONFIG_PATH
    _config = RuntimeConfig.from_yaml(path)
    return _config
