"""
生成服务与命令行单元测试

每个模块完成后必须运行：pytest tests/unit/test_service.py -v
"""

import io
import json
from pathlib import Path

import pytest
from PyPDF2 import PdfReader

from docfill.cli import EXIT_GENERATION, EXIT_INPUT, main
from docfill.engine import PdfGenerator
from docfill.interfaces import DocumentNotFoundError, GenerationError, IPdfGenerator, InvalidDataContextError
from docfill.models import Element
from docfill.service import GenerationService, parse_data_context
from docfill.store import DocumentStore


class BrokenGenerator(IPdfGenerator):
    def generate(self, background, elements, data):
        raise KeyError("unexpected")


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture
def template(store: DocumentStore, background_pdf: str):
    doc = store.create_document("Prescription", background_pdf, "application/pdf")
    return store.replace_elements(
        doc.id,
        [
            Element(id="t1", x=50, y=80, fieldName="patient_name"),
            Element(id="t2", x=50, y=110, fieldName="hn", pageNumber=2),
            Element(id="t3", x=50, y=140, fieldName="hn", pageNumber=9),
        ],
    )


@pytest.fixture
def service(store: DocumentStore, font_set) -> GenerationService:
    return GenerationService(store=store, generator=PdfGenerator(fonts=font_set))


class TestParseDataContext:
    """数据上下文校验测试"""

    def test_dict_passthrough(self):
        """测试 dict 原样返回"""
        data = {"a": 1}
        assert parse_data_context(data) is data

    @pytest.mark.parametrize("raw", ['{"hn": "HN-1"}', b'{"hn": "HN-1"}'])
    def test_json_text(self, raw):
        """测试JSON文本/字节"""
        assert parse_data_context(raw) == {"hn": "HN-1"}

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_is_empty_object(self, raw):
        """测试空输入视为空对象"""
        assert parse_data_context(raw) == {}

    @pytest.mark.parametrize("raw", ["[1, 2]", "42", '"text"', [1, 2]])
    def test_parse_data_context_rejects_non_object(self, raw):
        """测试顶层不是对象 → InvalidDataContextError"""
        with pytest.raises(InvalidDataContextError):
            parse_data_context(raw)

    def test_invalid_json(self):
        """测试非法JSON → InvalidDataContextError"""
        with pytest.raises(InvalidDataContextError):
            parse_data_context("{not json")


class TestGenerationService:
    """生成服务测试"""

    def test_generate_filename(self, service: GenerationService, template, sample_data: dict):
        """测试生成结果文件名 generated_<id>.pdf"""
        result = service.generate(template.id, sample_data)
        assert result.filename == f"generated_{template.id}.pdf"
        assert result.media_type == "application/pdf"
        assert len(PdfReader(io.BytesIO(result.content)).pages) == 2

    def test_generate_report(self, service: GenerationService, template, sample_data: dict):
        """测试报告：页码超出范围的元素被跳过"""
        report = service.generate(template.id, json.dumps(sample_data)).report
        assert report.drawn == 2
        assert report.skipped == 1

    def test_generate_unknown_template(self, service: GenerationService):
        """测试模板不存在 → DocumentNotFoundError"""
        with pytest.raises(DocumentNotFoundError):
            service.generate(12345, {})

    def test_generate_invalid_data(self, service: GenerationService, template):
        """测试数据上下文非法时不生成"""
        with pytest.raises(InvalidDataContextError):
            service.generate(template.id, "[]")

    def test_unexpected_failure_wrapped(self, store: DocumentStore, template):
        """测试未预期异常包装为 GenerationError"""
        service = GenerationService(store=store, generator=BrokenGenerator())
        with pytest.raises(GenerationError):
            service.generate(template.id, {})


class TestCli:
    """命令行测试"""

    def test_generate_command(self, template, sample_data: dict, tmp_path: Path):
        """测试 generate 子命令"""
        data_file = tmp_path / "data.json"
        data_file.write_text(json.dumps(sample_data), encoding="utf-8")
        out = tmp_path / "out" / "result.pdf"
        assert main(["generate", str(template.id), "--data", str(data_file), "-o", str(out)]) == 0
        assert out.read_bytes().startswith(b"%PDF")

    def test_generate_unknown_template(self, tmp_path: Path):
        """测试模板不存在 → 退出码 1"""
        assert main(["generate", "777", "-o", str(tmp_path / "x.pdf")]) == EXIT_INPUT

    def test_generate_invalid_data(self, template, tmp_path: Path):
        """测试数据文件不是对象 → 退出码 1"""
        data_file = tmp_path / "data.json"
        data_file.write_text("[1]", encoding="utf-8")
        assert main(["generate", str(template.id), "--data", str(data_file)]) == EXIT_INPUT

    def test_render_command(self, tmp_path: Path, pdf_factory, sample_data: dict, capsys):
        """测试 render 子命令直接使用底图文件"""
        background = tmp_path / "form.pdf"
        background.write_bytes(pdf_factory(1))
        elements = tmp_path / "elements.json"
        elements.write_text(
            json.dumps({"elements": [{"id": 1, "type": "text", "x": 20, "y": 20, "fieldName": "hn"}]}),
            encoding="utf-8",
        )
        data_file = tmp_path / "data.json"
        data_file.write_text(json.dumps(sample_data), encoding="utf-8")
        out = tmp_path / "filled.pdf"

        code = main(
            ["render", "--background", str(background), "--elements", str(elements),
             "--data", str(data_file), "-o", str(out)]
        )
        assert code == 0
        assert len(PdfReader(str(out)).pages) == 1
        assert "绘制 1" in capsys.readouterr().out

    def test_missing_font_exit_code(self, runtime_config, template, tmp_path: Path):
        """测试字体缺失 → 退出码 2"""
        runtime_config.fonts.primary_path = str(tmp_path / "missing.ttf")
        assert main(["generate", str(template.id), "-o", str(tmp_path / "x.pdf")]) == EXIT_GENERATION

    def test_list_command(self, template, capsys):
        """测试 list 子命令"""
        assert main(["list"]) == 0
        assert "Prescription" in capsys.readouterr().out
