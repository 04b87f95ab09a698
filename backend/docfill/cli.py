"""
命令行入口

用法：
    docfill generate 3 --data data.json -o out.pdf
    docfill render --background form.pdf --elements elements.json --data data.json -o out.pdf
    docfill list

退出码：0 成功；1 模板不存在/输入非法；2 生成失败
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from .config import get_config, reload_config, setup_logging
from .interfaces import (
    DocumentNotFoundError,
    FontLoadError,
    GenerationError,
    InvalidDataContextError,
)
from .models import Background, Element, FileType, GeneratedDocument
from .service import parse_data_context

logger = logging.getLogger(__name__)

EXIT_INPUT = 1
EXIT_GENERATION = 2

_ELEMENTS = TypeAdapter(list[Element])


def _read_data(path: str | None) -> dict:
    if not path:
        return {}
    return parse_data_context(Path(path).read_bytes())


def _write_output(result: GeneratedDocument, out: str | None) -> Path:
    out_path = Path(out or result.filename)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(result.content)
    report = result.report
    print(f"{out_path}: 绘制 {report.drawn}, 抑制 {report.suppressed}, 跳过 {report.skipped}")
    for element_id, reason in report.skip_reasons().items():
        print(f"  跳过 {element_id}: {reason.value}")
    if report.background_fallback:
        print("  底图不可用，已使用空白页")
    return out_path


def _cmd_generate(args: argparse.Namespace) -> int:
    from .service import GenerationService

    result = GenerationService().generate(args.template_id, _read_data(args.data))
    _write_output(result, args.output)
    return 0


def _cmd_render(args: argparse.Namespace) -> int:
    from .engine import AssetLoader, PdfGenerator

    background_path = Path(args.background).resolve()
    elements_raw = json.loads(Path(args.elements).read_text(encoding="utf-8"))
    if isinstance(elements_raw, dict):
        elements_raw = elements_raw.get("elements", [])
    elements = _ELEMENTS.validate_python(elements_raw)

    # 底图按本地文件读取：资源根目录设为底图所在目录
    loader = AssetLoader(asset_root=background_path.parent)
    background = Background(
        file_url=f"/{background_path.name}",
        file_type=FileType.normalize(None, background_path.name),
    )
    result = PdfGenerator(loader=loader).generate(background, elements, _read_data(args.data))
    result.filename = f"generated_{background_path.stem}.pdf"
    _write_output(result, args.output)
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    from .store import DocumentStore

    documents = DocumentStore().list_documents()
    if not documents:
        print("没有模板")
        return 0
    for doc in documents:
        print(f"{doc.id:>4}  {doc.file_type.value:<5}  {len(doc.elements):>3} 元素  {doc.title}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docfill", description="模板PDF填充生成")
    parser.add_argument("--config", default="", help="运行期配置文件（默认：config/runtime.yaml）")
    sub = parser.add_subparsers(dest="command", required=True)

    p_gen = sub.add_parser("generate", help="按已保存的模板生成PDF")
    p_gen.add_argument("template_id", type=int)
    p_gen.add_argument("--data", default="", help="数据上下文JSON文件")
    p_gen.add_argument("-o", "--output", default="", help="输出PDF（默认：generated_<id>.pdf）")
    p_gen.set_defaults(func=_cmd_generate)

    p_render = sub.add_parser("render", help="直接用底图文件和元素JSON生成PDF")
    p_render.add_argument("--background", required=True, help="底图（PDF/PNG/JPEG）")
    p_render.add_argument("--elements", required=True, help="元素JSON（数组或 {elements: [...]})")
    p_render.add_argument("--data", default="", help="数据上下文JSON文件")
    p_render.add_argument("-o", "--output", default="", help="输出PDF")
    p_render.set_defaults(func=_cmd_render)

    p_list = sub.add_parser("list", help="列出模板")
    p_list.set_defaults(func=_cmd_list)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = reload_config(args.config) if args.config else get_config()
    setup_logging(config)

    try:
        return args.func(args)
    except (DocumentNotFoundError, InvalidDataContextError, ValidationError) as e:
        print(f"输入错误: {e}", file=sys.stderr)
        return EXIT_INPUT
    except (OSError, json.JSONDecodeError) as e:
        print(f"读取输入失败: {e}", file=sys.stderr)
        return EXIT_INPUT
    except (GenerationError, FontLoadError) as e:
        print(f"生成失败: {e}", file=sys.stderr)
        return EXIT_GENERATION


if __name__ == "__main__":
    raise SystemExit(main())
