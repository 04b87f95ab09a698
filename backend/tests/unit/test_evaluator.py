"""
脚本求值器单元测试

每个模块完成后必须运行：pytest tests/unit/test_evaluator.py -v
"""

import pytest

from docfill.engine.evaluator import (
    EVAL_FAILED,
    ScriptEvaluator,
    compile_snippet,
    js_str,
    to_display_str,
)


class ExplodingRecord(dict):
    def get(self, key, default=None):
        raise MemoryError("record unavailable")


class TestExpressions:
    """表达式求值测试"""

    def test_expression_wrapped_in_return(self, evaluator: ScriptEvaluator):
        """测试纯表达式隐式 return"""
        assert evaluator.evaluate("v + '!'", {"v": "hi"}) == "hi!"

    def test_db_access(self, evaluator: ScriptEvaluator, sample_data: dict):
        """测试通过 db 访问数据上下文"""
        assert evaluator.evaluate("db.doctor.name", {"db": sample_data, "v": ""}) == "Dr. Lee"
        assert evaluator.evaluate("db.prescription_items.length", {"db": sample_data}) == 2
        assert evaluator.evaluate("db['hn']", {"db": sample_data}) == "HN-0001"

    def test_numeric_string_coercion(self, evaluator: ScriptEvaluator):
        """测试字符串参与算术时转换为数字"""
        assert to_display_str(evaluator.evaluate("v * 2", {"v": "21"})) == "42"
        assert evaluator.evaluate("v > 30 ? 'HIGH' : 'OK'", {"v": "37.5"}) == "HIGH"

    def test_plus_concatenates(self, evaluator: ScriptEvaluator):
        """测试 + 有字符串时拼接"""
        assert evaluator.evaluate("1 + '2'", {}) == "12"
        assert evaluator.evaluate("1 + 2", {}) == 3

    def test_equality(self, evaluator: ScriptEvaluator):
        """测试宽松/严格相等"""
        assert evaluator.evaluate("v == 1", {"v": "1"}) is True
        assert evaluator.evaluate("v === 1", {"v": "1"}) is False
        assert evaluator.evaluate("null == undefined", {}) is True

    def test_nullish_and_optional_chaining(self, evaluator: ScriptEvaluator, sample_data: dict):
        """测试 ?? 与 ?."""
        assert evaluator.evaluate("db.allergy ?? 'none'", {"db": sample_data}) == "none"
        assert evaluator.evaluate("db.missing?.name", {"db": sample_data}) is None

    def test_builtins(self, evaluator: ScriptEvaluator):
        """测试白名单函数与方法"""
        assert evaluator.evaluate("Math.round(2.5)", {}) == 3
        assert evaluator.evaluate("Number(v).toFixed(2)", {"v": "3.14159"}) == "3.14"
        assert evaluator.evaluate("v.padStart(5, '0')", {"v": "42"}) == "00042"
        assert evaluator.evaluate("v.trim().toUpperCase()", {"v": "  ok "}) == "OK"
        assert evaluator.evaluate("parseInt('12px')", {}) == 12
        assert evaluator.evaluate("isNaN(Number('abc'))", {}) is True
        assert evaluator.evaluate("['a', 'b'].join('-')", {}) == "a-b"


class TestToFixed:
    """toFixed 舍入测试"""

    @pytest.mark.parametrize(
        "snippet,expected",
        [
            ("(2.5).toFixed(0)", "3"),
            ("(0.5).toFixed(0)", "1"),
            ("(1.25).toFixed(1)", "1.3"),
            ("(-2.5).toFixed(0)", "-3"),
            ("(1.005).toFixed(2)", "1.00"),
            ("(7).toFixed(2)", "7.00"),
            ("(1e21).toFixed(2)", "1e+21"),
        ],
    )
    def test_ties_round_away_from_zero(self, evaluator: ScriptEvaluator, snippet: str, expected: str):
        """测试恰好居中时取绝对值较大者，1.005 按二进制实际值舍入"""
        assert evaluator.evaluate(snippet, {}) == expected


class TestStatements:
    """语句执行测试"""

    def test_statement_sequence(self, evaluator: ScriptEvaluator):
        """测试含 return / ; 时按函数体执行"""
        snippet = "let n = Number(v); if (n >= 38) { return 'FEVER'; } return 'NORMAL';"
        assert evaluator.evaluate(snippet, {"v": "38.2"}) == "FEVER"
        assert evaluator.evaluate(snippet, {"v": "36.6"}) == "NORMAL"

    def test_return_false(self, evaluator: ScriptEvaluator):
        """测试返回 false"""
        assert evaluator.evaluate("if (v === '') return false; return v;", {"v": ""}) is False

    def test_no_return_is_none(self, evaluator: ScriptEvaluator):
        """测试没有 return 的语句序列结果为 None"""
        assert evaluator.evaluate("let x = 1;", {}) is None

    def test_assign_declared_local(self, evaluator: ScriptEvaluator):
        """测试给已声明的局部变量赋值"""
        assert evaluator.evaluate("let s = 'a'; s = s + 'b'; return s;", {}) == "ab"


class TestFailures:
    """失败处理测试"""

    def test_empty_snippet(self, evaluator: ScriptEvaluator):
        """测试空片段返回 None"""
        assert evaluator.evaluate("", {"v": "x"}) is None
        assert evaluator.evaluate("   ", {"v": "x"}) is None

    def test_syntax_error(self, evaluator: ScriptEvaluator):
        """测试语法错误返回 EVAL_FAILED"""
        assert evaluator.evaluate("v +", {"v": "x"}) is EVAL_FAILED

    @pytest.mark.parametrize("snippet", ["window.location", "process.exit()", "require('fs')", "globalThis"])
    def test_no_ambient_access(self, evaluator: ScriptEvaluator, snippet: str):
        """测试访问未绑定名称失败"""
        assert evaluator.evaluate(snippet, {"v": ""}) is EVAL_FAILED

    def test_unknown_method(self, evaluator: ScriptEvaluator):
        """测试调用非白名单方法失败"""
        assert evaluator.evaluate("v.constructor('x')", {"v": "a"}) is EVAL_FAILED

    def test_member_of_null(self, evaluator: ScriptEvaluator, sample_data: dict):
        """测试访问 null 的属性失败"""
        assert evaluator.evaluate("db.allergy.name", {"db": sample_data}) is EVAL_FAILED

    def test_step_budget(self):
        """测试求值步数上限"""
        evaluator = ScriptEvaluator(max_steps=5)
        assert evaluator.evaluate("1 + 2 + 3 + 4 + 5", {}) is EVAL_FAILED

    def test_string_cap(self):
        """测试字符串长度上限"""
        evaluator = ScriptEvaluator(max_string_length=10)
        assert evaluator.evaluate("v + v", {"v": "abcdefgh"}) is EVAL_FAILED

    @pytest.mark.parametrize("snippet", ["\"x\".padStart(1e15)", "v.padEnd(1e15, 'ab')", "v.padStart(101)"])
    def test_padding_capped_before_allocation(self, snippet: str):
        """测试填充目标长度超过上限时直接失败"""
        evaluator = ScriptEvaluator(max_string_length=100)
        assert evaluator.evaluate(snippet, {"v": "x"}) is EVAL_FAILED

    def test_padding_within_cap(self):
        """测试填充到恰好上限长度"""
        evaluator = ScriptEvaluator(max_string_length=10)
        assert evaluator.evaluate("v.padEnd(10, '-')", {"v": "ab"}) == "ab--------"

    def test_join_capped(self):
        """测试 join 结果超过上限时失败"""
        evaluator = ScriptEvaluator(max_string_length=10)
        assert evaluator.evaluate("['a', 'b', 'c'].join(v)", {"v": "-----"}) is EVAL_FAILED
        assert evaluator.evaluate("['a', 'b'].join('--')", {}) == "a--b"

    def test_unexpected_exception_contained(self, evaluator: ScriptEvaluator):
        """测试绑定对象内部抛出的任意异常也返回 EVAL_FAILED"""
        assert evaluator.evaluate("db.name", {"db": ExplodingRecord()}) is EVAL_FAILED

    def test_failed_renders_empty(self):
        """测试 EVAL_FAILED 渲染为空串"""
        assert to_display_str(EVAL_FAILED) == ""

    def test_compile_cached(self):
        """测试解析结果缓存"""
        assert compile_snippet("v + 1") is compile_snippet("v + 1")


class TestLegacyShortcuts:
    """旧版快捷脚本测试"""

    @pytest.mark.parametrize("value,expected", [("45", "1"), ("30", "0"), ("12.5", "0"), ("abc", "abc")])
    def test_check_limit_shortcut(self, evaluator: ScriptEvaluator, value: str, expected: str):
        """测试 checkLimit：>30 为 '1'，否则 '0'，非数值原样返回"""
        assert evaluator.evaluate("checkLimit", {"v": value}) == expected


class TestStringify:
    """字符串化测试"""

    @pytest.mark.parametrize(
        "value,expected",
        [(3.0, "3"), (2.5, "2.5"), (True, "true"), (None, "null"), ([1, "a", None], "1,a,")],
    )
    def test_js_str(self, value, expected):
        """测试类JavaScript字符串化"""
        assert js_str(value) == expected

    def test_display_none_empty(self):
        """测试 None 显示为空串"""
        assert to_display_str(None) == ""
