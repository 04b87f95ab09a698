"""
脚本求值器 - 受限语法的表达式/语句解释器

职责：
1. 执行模板作者编写的 script / formula / 表格列脚本
2. 只暴露调用方提供的绑定（db / v / row ...）与白名单函数
3. 单个片段失败时记录日志并返回 EVAL_FAILED，不中断生成

语法（类JavaScript子集）：
- 字面量：数字、字符串、true/false/null/undefined、数组
- 成员访问：a.b、a[0]、a?.b；白名单函数与方法调用
- 运算：! - + * / % + 比较(== === != !== < <= > >=) && || ?? 三元
- 语句：let/const/var、赋值、if/else、代码块、return
没有循环与函数定义，求值步数与字符串长度另有上限。

测试要点：
- test_expression_wrapped_in_return: 纯表达式隐式 return
- test_statement_sequence: 含 return / ; 时按函数体执行
- test_no_ambient_access: 访问未绑定名称失败
- test_check_limit_shortcut: 旧版快捷脚本优先
"""

from __future__ import annotations

import logging
import math
import re
from decimal import ROUND_HALF_UP, Context, Decimal
from functools import lru_cache
from typing import Any, Callable

from ..config import get_config
from ..interfaces import EvaluationError, IScriptEvaluator

logger = logging.getLogger(__name__)


class _Undefined:
    """JavaScript undefined"""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "undefined"


class _EvalFailed:
    """求值失败哨兵（渲染为空值）"""

    _instance: _EvalFailed | None = None

    def __new__(cls) -> _EvalFailed:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return ""

    def __repr__(self) -> str:
        return "EVAL_FAILED"


UNDEFINED = _Undefined()
EVAL_FAILED = _EvalFailed()


# ============================================================================
# 值语义（JavaScript风格）
# ============================================================================

_NUMERIC_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_INT_PREFIX_RE = re.compile(r"^[+-]?[0-9a-zA-Z]+")


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def format_number(n: int | float) -> str:
    if isinstance(n, int):
        return str(n)
    if math.isnan(n):
        return "NaN"
    if math.isinf(n):
        return "Infinity" if n > 0 else "-Infinity"
    if n.is_integer() and abs(n) < 1e21:
        return str(int(n))
    return repr(n)


def js_str(v: Any) -> str:
    """String(v)"""
    if v is UNDEFINED:
        return "undefined"
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "true" if v else "false"
    if _is_number(v):
        return format_number(v)
    if isinstance(v, str):
        return v
    if isinstance(v, (list, tuple)):
        return ",".join("" if x is None or x is UNDEFINED else js_str(x) for x in v)
    if isinstance(v, dict):
        return "[object Object]"
    return str(v)


def to_display_str(v: Any) -> str:
    """渲染用字符串：空值（None/undefined/失败）显示为空"""
    if v is None or v is UNDEFINED or v is EVAL_FAILED:
        return ""
    return js_str(v)


def to_number(v: Any) -> int | float:
    if isinstance(v, bool):
        return int(v)
    if _is_number(v):
        return v
    if v is None:
        return 0
    if v is UNDEFINED:
        return math.nan
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return 0
        if _NUMERIC_RE.match(s):
            return float(s)
        if s in ("Infinity", "+Infinity", "-Infinity"):
            return -math.inf if s.startswith("-") else math.inf
        return math.nan
    if isinstance(v, list):
        if not v:
            return 0
        if len(v) == 1:
            return to_number(js_str(v[0]))
    return math.nan


def truthy(v: Any) -> bool:
    if v is None or v is UNDEFINED:
        return False
    if isinstance(v, bool):
        return v
    if _is_number(v):
        return not (v == 0 or (isinstance(v, float) and math.isnan(v)))
    if isinstance(v, str):
        return len(v) > 0
    return True


def _type_tag(v: Any) -> str:
    if v is UNDEFINED:
        return "undefined"
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "boolean"
    if _is_number(v):
        return "number"
    if isinstance(v, str):
        return "string"
    return "object"


def strict_equals(a: Any, b: Any) -> bool:
    ta, tb = _type_tag(a), _type_tag(b)
    if ta != tb:
        return False
    if ta == "object":
        return a is b
    return a == b


def loose_equals(a: Any, b: Any) -> bool:
    ta, tb = _type_tag(a), _type_tag(b)
    if ta == tb:
        return strict_equals(a, b)
    nullish = ("null", "undefined")
    if ta in nullish or tb in nullish:
        return ta in nullish and tb in nullish
    if ta == "object" or tb == "object":
        a = js_str(a) if ta == "object" else a
        b = js_str(b) if tb == "object" else b
        return loose_equals(a, b)
    return to_number(a) == to_number(b)


# ============================================================================
# 词法 / 语法
# ============================================================================

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<comment>//[^\n]*)
  | (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||\?\?|\?\.(?!\d)|[-+*/%<>!?:.,;()\[\]{}=])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
_KEYWORD_LITERALS = {"true": True, "false": False, "null": None, "undefined": UNDEFINED}
_STATEMENT_RE = re.compile(r"\breturn\b|;")


def _unescape(body: str) -> str:
    def repl(m: re.Match) -> str:
        ch = m.group(1)
        if ch.startswith("u"):
            return chr(int(ch[1:], 16))
        return _ESCAPES.get(ch, ch)

    return re.sub(r"\\(u[0-9a-fA-F]{4}|.)", repl, body)


def tokenize(source: str) -> list[tuple[str, Any]]:
    tokens: list[tuple[str, Any]] = []
    pos = 0
    while pos < len(source):
        m = _TOKEN_RE.match(source, pos)
        if not m:
            raise EvaluationError(f"无法识别的字符 {source[pos]!r} (位置 {pos})")
        kind = m.lastgroup
        text = m.group(kind)
        pos = m.end()
        if kind in ("ws", "comment"):
            continue
        if kind == "number":
            tokens.append(("num", float(text) if any(c in text for c in ".eE") else int(text)))
        elif kind == "string":
            tokens.append(("str", _unescape(text[1:-1])))
        elif kind == "name":
            tokens.append(("name", text))
        else:
            tokens.append(("op", text))
    tokens.append(("eof", None))
    return tokens


class _Parser:
    """递归下降解析，产出元组形式的语法树"""

    def __init__(self, source: str):
        self.tokens = tokenize(source)
        self.pos = 0

    # --- token helpers ---
    def _peek(self, offset: int = 0) -> tuple[str, Any]:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def _next(self) -> tuple[str, Any]:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def _at(self, kind: str, value: Any = None) -> bool:
        k, v = self._peek()
        return k == kind and (value is None or v == value)

    def _accept(self, kind: str, value: Any = None) -> bool:
        if self._at(kind, value):
            self.pos += 1
            return True
        return False

    def _expect(self, kind: str, value: Any = None) -> Any:
        if not self._at(kind, value):
            raise EvaluationError(f"语法错误: 期望 {value or kind}, 实际 {self._peek()[1]!r}")
        return self._next()[1]

    # --- entry points ---
    def parse_program(self) -> tuple:
        stmts = []
        while not self._at("eof"):
            stmts.append(self._statement())
        return tuple(stmts)

    def parse_expression_program(self) -> tuple:
        expr = self._expression()
        self._expect("eof")
        return (("return", expr),)

    # --- statements ---
    def _statement(self) -> tuple:
        if self._accept("op", ";"):
            return ("block", ())
        if self._accept("op", "{"):
            body = []
            while not self._accept("op", "}"):
                if self._at("eof"):
                    raise EvaluationError("语法错误: 代码块未闭合")
                body.append(self._statement())
            return ("block", tuple(body))
        if self._accept("name", "return"):
            expr = None
            if not (self._at("op", ";") or self._at("op", "}") or self._at("eof")):
                expr = self._expression()
            self._accept("op", ";")
            return ("return", expr)
        if self._at("name", "let") or self._at("name", "const") or self._at("name", "var"):
            self._next()
            decls = []
            while True:
                name = self._expect("name")
                init = self._expression() if self._accept("op", "=") else ("lit", UNDEFINED)
                decls.append((name, init))
                if not self._accept("op", ","):
                    break
            self._accept("op", ";")
            return ("decl", tuple(decls))
        if self._accept("name", "if"):
            self._expect("op", "(")
            test = self._expression()
            self._expect("op", ")")
            cons = self._statement()
            alt = self._statement() if self._accept("name", "else") else None
            return ("if", test, cons, alt)
        if self._peek()[0] == "name" and self._peek(1) == ("op", "="):
            name = self._next()[1]
            self._next()
            expr = self._expression()
            self._accept("op", ";")
            return ("assign", name, expr)
        expr = self._expression()
        self._accept("op", ";")
        return ("expr", expr)

    # --- expressions ---
    def _expression(self) -> tuple:
        test = self._logical_or()
        if self._accept("op", "?"):
            cons = self._expression()
            self._expect("op", ":")
            alt = self._expression()
            return ("cond", test, cons, alt)
        return test

    def _logical_or(self) -> tuple:
        node = self._logical_and()
        while self._at("op", "||") or self._at("op", "??"):
            op = self._next()[1]
            node = ("logical", op, node, self._logical_and())
        return node

    def _logical_and(self) -> tuple:
        node = self._equality()
        while self._accept("op", "&&"):
            node = ("logical", "&&", node, self._equality())
        return node

    def _binary_level(self, ops: tuple[str, ...], operand: Callable[[], tuple]) -> tuple:
        node = operand()
        while self._peek()[0] == "op" and self._peek()[1] in ops:
            op = self._next()[1]
            node = ("binary", op, node, operand())
        return node

    def _equality(self) -> tuple:
        return self._binary_level(("==", "!=", "===", "!=="), self._relational)

    def _relational(self) -> tuple:
        return self._binary_level(("<", ">", "<=", ">="), self._additive)

    def _additive(self) -> tuple:
        return self._binary_level(("+", "-"), self._multiplicative)

    def _multiplicative(self) -> tuple:
        return self._binary_level(("*", "/", "%"), self._unary)

    def _unary(self) -> tuple:
        if self._peek()[0] == "op" and self._peek()[1] in ("!", "-", "+"):
            op = self._next()[1]
            return ("unary", op, self._unary())
        return self._postfix()

    def _postfix(self) -> tuple:
        node = self._primary()
        while True:
            if self._accept("op", "."):
                node = ("member", node, ("lit", self._expect("name")), False)
            elif self._accept("op", "?."):
                if self._accept("op", "["):
                    key = self._expression()
                    self._expect("op", "]")
                    node = ("member", node, key, True)
                else:
                    node = ("member", node, ("lit", self._expect("name")), True)
            elif self._accept("op", "["):
                key = self._expression()
                self._expect("op", "]")
                node = ("member", node, key, False)
            elif self._accept("op", "("):
                node = ("call", node, self._arguments(")"))
            else:
                return node

    def _arguments(self, closing: str) -> tuple:
        args = []
        if not self._accept("op", closing):
            while True:
                args.append(self._expression())
                if self._accept("op", closing):
                    break
                self._expect("op", ",")
        return tuple(args)

    def _primary(self) -> tuple:
        kind, value = self._next()
        if kind in ("num", "str"):
            return ("lit", value)
        if kind == "name":
            if value in _KEYWORD_LITERALS:
                return ("lit", _KEYWORD_LITERALS[value])
            return ("name", value)
        if kind == "op" and value == "(":
            expr = self._expression()
            self._expect("op", ")")
            return expr
        if kind == "op" and value == "[":
            return ("array", self._arguments("]"))
        raise EvaluationError(f"语法错误: 意外的 {value!r}")


@lru_cache(maxsize=512)
def compile_snippet(snippet: str) -> tuple:
    """解析片段（结果不可变，可跨线程共享）"""
    parser = _Parser(snippet)
    if _STATEMENT_RE.search(snippet):
        return parser.parse_program()
    return parser.parse_expression_program()


# ============================================================================
# 白名单函数
# ============================================================================

class _Builtin:
    """可调用的白名单函数/方法"""

    def __init__(self, name: str, fn: Callable[..., Any]):
        self.name = name
        self.fn = fn

    def __call__(self, *args: Any) -> Any:
        return self.fn(*args)


def _parse_float(s: Any = UNDEFINED) -> float:
    m = _FLOAT_PREFIX_RE.match(js_str(s).strip())
    return float(m.group(0)) if m else math.nan


def _parse_int(s: Any = UNDEFINED, radix: Any = 10) -> int | float:
    text = js_str(s).strip()
    base = int(to_number(radix)) or 10
    m = _INT_PREFIX_RE.match(text)
    if not m:
        return math.nan
    digits = m.group(0)
    sign = -1 if digits.startswith("-") else 1
    digits = digits.lstrip("+-")
    valid = ""
    for ch in digits:
        try:
            int(ch, base)
        except ValueError:
            break
        valid += ch
    return sign * int(valid, base) if valid else math.nan


def _finite_op(fn: Callable[[float], Any]) -> Callable[[Any], Any]:
    def op(x: Any = UNDEFINED) -> Any:
        n = to_number(x)
        if isinstance(n, float) and not math.isfinite(n):
            return n
        return fn(n)
    return op


_MATH = {
    "round": _Builtin("round", _finite_op(lambda n: math.floor(n + 0.5))),
    "floor": _Builtin("floor", _finite_op(math.floor)),
    "ceil": _Builtin("ceil", _finite_op(math.ceil)),
    "abs": _Builtin("abs", lambda x=UNDEFINED: abs(to_number(x))),
    "min": _Builtin("min", lambda *a: min((to_number(x) for x in a), default=math.inf)),
    "max": _Builtin("max", lambda *a: max((to_number(x) for x in a), default=-math.inf)),
    "pow": _Builtin("pow", lambda a=UNDEFINED, b=UNDEFINED: math.pow(to_number(a), to_number(b))),
}

_GLOBALS: dict[str, Any] = {
    "Number": _Builtin("Number", lambda x=0: to_number(x)),
    "String": _Builtin("String", lambda x="": js_str(x)),
    "Boolean": _Builtin("Boolean", lambda x=False: truthy(x)),
    "parseFloat": _Builtin("parseFloat", _parse_float),
    "parseInt": _Builtin("parseInt", _parse_int),
    "isNaN": _Builtin("isNaN", lambda x=UNDEFINED: math.isnan(to_number(x))),
    "Math": _MATH,
    "NaN": math.nan,
    "Infinity": math.inf,
}


def _clamp_index(n: Any, length: int, default: int) -> int:
    if n is UNDEFINED:
        return default
    value = to_number(n)
    if isinstance(value, float) and math.isnan(value):
        return 0
    return int(max(0, min(length, value)))


def _slice_index(n: Any, length: int, default: int) -> int:
    if n is UNDEFINED:
        return default
    value = to_number(n)
    if isinstance(value, float) and math.isnan(value):
        return 0
    value = int(value)
    return max(0, length + value) if value < 0 else min(value, length)


def _substring(s: str, a: Any = UNDEFINED, b: Any = UNDEFINED) -> str:
    start = _clamp_index(a, len(s), 0)
    end = _clamp_index(b, len(s), len(s))
    if start > end:
        start, end = end, start
    return s[start:end]


def _pad(s: str, limit: int, n: Any, fill: Any, left: bool) -> str:
    target = to_number(n) if n is not UNDEFINED else 0
    pad = " " if fill is UNDEFINED else js_str(fill)
    if math.isnan(target) or target <= len(s) or not pad:
        return s
    if target > limit:
        raise EvaluationError("字符串超出长度上限")
    target = int(target)
    filler = (pad * (target - len(s)))[: target - len(s)]
    return filler + s if left else s + filler


_FIXED_CONTEXT = Context(prec=200, rounding=ROUND_HALF_UP)


def _to_fixed(n: int | float, digits: Any = 0) -> str:
    """二进制值的精确十进制展开，恰好居中时取绝对值较大者"""
    places = int(to_number(digits)) if digits is not UNDEFINED else 0
    if not 0 <= places <= 100:
        raise EvaluationError("toFixed() digits 超出范围")
    if isinstance(n, float) and not math.isfinite(n):
        return format_number(n)
    if abs(n) >= 1e21:
        return format_number(n)
    rounded = Decimal(n).quantize(Decimal(1).scaleb(-places), context=_FIXED_CONTEXT)
    return f"{rounded:f}"


def _join(a: list, limit: int, sep: Any = UNDEFINED) -> str:
    separator = "," if sep is UNDEFINED else js_str(sep)
    parts = ["" if x is None or x is UNDEFINED else js_str(x) for x in a]
    if sum(map(len, parts)) + len(separator) * max(len(parts) - 1, 0) > limit:
        raise EvaluationError("字符串超出长度上限")
    return separator.join(parts)


_STRING_METHODS: dict[str, Callable[..., Any]] = {
    "toUpperCase": lambda s: s.upper(),
    "toLowerCase": lambda s: s.lower(),
    "trim": lambda s: s.strip(),
    "toString": lambda s: s,
    "includes": lambda s, x=UNDEFINED: js_str(x) in s,
    "startsWith": lambda s, x=UNDEFINED: s.startswith(js_str(x)),
    "endsWith": lambda s, x=UNDEFINED: s.endswith(js_str(x)),
    "indexOf": lambda s, x=UNDEFINED: s.find(js_str(x)),
    "charAt": lambda s, i=0: (s[int(to_number(i))] if 0 <= int(to_number(i)) < len(s) else ""),
    "substring": _substring,
    "slice": lambda s, a=UNDEFINED, b=UNDEFINED: s[_slice_index(a, len(s), 0):_slice_index(b, len(s), len(s))],
    "replace": lambda s, a=UNDEFINED, b=UNDEFINED: s.replace(js_str(a), js_str(b), 1),
    "split": lambda s, sep=UNDEFINED: [s] if sep is UNDEFINED else (list(s) if js_str(sep) == "" else s.split(js_str(sep))),
}

_NUMBER_METHODS: dict[str, Callable[..., Any]] = {
    "toFixed": _to_fixed,
    "toString": lambda n: format_number(n),
}

_ARRAY_METHODS: dict[str, Callable[..., Any]] = {
    "includes": lambda a, x=UNDEFINED: any(strict_equals(i, x) for i in a),
    "indexOf": lambda a, x=UNDEFINED: next((i for i, v in enumerate(a) if strict_equals(v, x)), -1),
    "toString": lambda a: js_str(a),
}

# 结果可能超长的方法，第二个参数为长度上限，生成前先校验
_BOUNDED_STRING_METHODS: dict[str, Callable[..., Any]] = {
    "padStart": lambda s, limit, n=UNDEFINED, f=UNDEFINED: _pad(s, limit, n, f, left=True),
    "padEnd": lambda s, limit, n=UNDEFINED, f=UNDEFINED: _pad(s, limit, n, f, left=False),
}

_BOUNDED_ARRAY_METHODS: dict[str, Callable[..., Any]] = {
    "join": _join,
}


# ============================================================================
# 解释执行
# ============================================================================

class _ReturnSignal(Exception):
    def __init__(self, value: Any):
        self.value = value


class _Interpreter:
    """单次求值的执行状态"""

    def __init__(self, bindings: dict[str, Any], max_steps: int, max_string_length: int):
        self.scope: dict[str, Any] = dict(bindings)
        self.max_steps = max_steps
        self.max_string_length = max_string_length
        self.steps = 0

    def run(self, program: tuple) -> Any:
        try:
            for stmt in program:
                self._exec(stmt)
        except _ReturnSignal as ret:
            return ret.value
        return UNDEFINED

    def _tick(self) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise EvaluationError("超出求值步数上限")

    def _check_str(self, s: str) -> str:
        if len(s) > self.max_string_length:
            raise EvaluationError("字符串超出长度上限")
        return s

    # --- statements ---
    def _exec(self, stmt: tuple) -> None:
        self._tick()
        kind = stmt[0]
        if kind == "expr":
            self._eval(stmt[1])
        elif kind == "return":
            raise _ReturnSignal(UNDEFINED if stmt[1] is None else self._eval(stmt[1]))
        elif kind == "decl":
            for name, init in stmt[1]:
                self.scope[name] = self._eval(init)
        elif kind == "assign":
            if stmt[1] not in self.scope:
                raise EvaluationError(f"{stmt[1]} is not defined")
            self.scope[stmt[1]] = self._eval(stmt[2])
        elif kind == "if":
            if truthy(self._eval(stmt[1])):
                self._exec(stmt[2])
            elif stmt[3] is not None:
                self._exec(stmt[3])
        elif kind == "block":
            for inner in stmt[1]:
                self._exec(inner)

    # --- expressions ---
    def _eval(self, node: tuple) -> Any:
        self._tick()
        kind = node[0]
        if kind == "lit":
            return node[1]
        if kind == "name":
            return self._lookup(node[1])
        if kind == "array":
            return [self._eval(item) for item in node[1]]
        if kind == "member":
            obj = self._eval(node[1])
            return self._member(obj, self._eval(node[2]), optional=node[3])
        if kind == "call":
            return self._call(node[1], node[2])
        if kind == "unary":
            return self._unary(node[1], self._eval(node[2]))
        if kind == "logical":
            left = self._eval(node[2])
            if node[1] == "&&":
                return self._eval(node[3]) if truthy(left) else left
            if node[1] == "||":
                return left if truthy(left) else self._eval(node[3])
            return self._eval(node[3]) if left is None or left is UNDEFINED else left
        if kind == "cond":
            return self._eval(node[2]) if truthy(self._eval(node[1])) else self._eval(node[3])
        if kind == "binary":
            return self._binary(node[1], self._eval(node[2]), self._eval(node[3]))
        raise EvaluationError(f"未知语法节点: {kind}")

    def _lookup(self, name: str) -> Any:
        if name in self.scope:
            return self.scope[name]
        if name in _GLOBALS:
            return _GLOBALS[name]
        raise EvaluationError(f"{name} is not defined")

    def _member(self, obj: Any, key: Any, optional: bool) -> Any:
        if obj is None or obj is UNDEFINED:
            if optional:
                return UNDEFINED
            raise EvaluationError(f"Cannot read properties of {js_str(obj)} (reading '{js_str(key)}')")

        if isinstance(obj, dict):
            if obj is _MATH:
                return _MATH.get(js_str(key), UNDEFINED)
            return obj.get(js_str(key), UNDEFINED)

        if isinstance(obj, (str, list)):
            if _is_number(key) and not isinstance(key, bool):
                index = key
                if isinstance(index, float) and not index.is_integer():
                    return UNDEFINED
                index = int(index)
                return obj[index] if 0 <= index < len(obj) else UNDEFINED
            name = js_str(key)
            if name == "length":
                return len(obj)
            if name.isdigit():
                return self._member(obj, int(name), optional)
            bounded = _BOUNDED_STRING_METHODS if isinstance(obj, str) else _BOUNDED_ARRAY_METHODS
            if name in bounded:
                method = bounded[name]
                limit = self.max_string_length
                return _Builtin(name, lambda *args: method(obj, limit, *args))
            methods = _STRING_METHODS if isinstance(obj, str) else _ARRAY_METHODS
            return self._bind(obj, methods.get(name), name)

        if isinstance(obj, bool):
            return self._bind(obj, {"toString": js_str}.get(js_str(key)), js_str(key))

        if _is_number(obj):
            return self._bind(obj, _NUMBER_METHODS.get(js_str(key)), js_str(key))

        return UNDEFINED

    @staticmethod
    def _bind(obj: Any, method: Callable[..., Any] | None, name: str) -> Any:
        if method is None:
            return UNDEFINED
        return _Builtin(name, lambda *args: method(obj, *args))

    def _call(self, callee_node: tuple, arg_nodes: tuple) -> Any:
        callee = self._eval(callee_node)
        if not isinstance(callee, _Builtin):
            raise EvaluationError("is not a function")
        args = [self._eval(a) for a in arg_nodes]
        try:
            result = callee(*args)
        except TypeError as e:
            raise EvaluationError(f"{callee.name}() 参数错误: {e}") from e
        if isinstance(result, str):
            self._check_str(result)
        return result

    def _unary(self, op: str, value: Any) -> Any:
        if op == "!":
            return not truthy(value)
        n = to_number(value)
        return -n if op == "-" else n

    def _binary(self, op: str, left: Any, right: Any) -> Any:
        if op == "+":
            if isinstance(left, (list, dict)):
                left = js_str(left)
            if isinstance(right, (list, dict)):
                right = js_str(right)
            if isinstance(left, str) or isinstance(right, str):
                return self._check_str(js_str(left) + js_str(right))
            return to_number(left) + to_number(right)
        if op in ("-", "*", "/", "%"):
            return self._arithmetic(op, to_number(left), to_number(right))
        if op == "===":
            return strict_equals(left, right)
        if op == "!==":
            return not strict_equals(left, right)
        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        return self._compare(op, left, right)

    @staticmethod
    def _arithmetic(op: str, a: int | float, b: int | float) -> int | float:
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "/":
            if b == 0:
                if a == 0 or math.isnan(a):
                    return math.nan
                return math.copysign(math.inf, a) * math.copysign(1, b)
            return a / b
        if b == 0 or math.isinf(a) or math.isnan(a) or math.isnan(b):
            return math.nan
        return math.fmod(a, b)

    @staticmethod
    def _compare(op: str, left: Any, right: Any) -> bool:
        if isinstance(left, str) and isinstance(right, str):
            a, b = left, right
        else:
            a, b = to_number(left), to_number(right)
            if math.isnan(a) or math.isnan(b):
                return False
        if op == "<":
            return a < b
        if op == ">":
            return a > b
        if op == "<=":
            return a <= b
        return a >= b


# ============================================================================
# 旧版快捷脚本
# ============================================================================

def _check_limit(bindings: dict[str, Any]) -> Any:
    """checkLimit: 数值 > 30 返回 '1'，否则 '0'；非数值原样返回"""
    raw = to_display_str(bindings.get("v"))
    n = to_number(raw) if raw.strip() else math.nan
    if math.isnan(n):
        return raw
    return "1" if n > 30 else "0"


LEGACY_SHORTCUTS: dict[str, Callable[[dict[str, Any]], Any]] = {
    "checkLimit": _check_limit,
}


class ScriptEvaluator(IScriptEvaluator):
    """受限语法脚本求值器"""

    def __init__(self, max_steps: int | None = None, max_string_length: int | None = None):
        config = get_config()
        self.max_steps = max_steps or config.scripting.max_steps
        self.max_string_length = max_string_length or config.scripting.max_string_length

    def evaluate(self, snippet: str, bindings: dict[str, Any]) -> Any:
        """执行片段；失败返回 EVAL_FAILED，结果为 undefined 时返回 None"""
        if not snippet or not snippet.strip():
            return None

        shortcut = LEGACY_SHORTCUTS.get(snippet.strip())
        if shortcut is not None:
            return shortcut(bindings)

        try:
            program = compile_snippet(snippet)
            result = _Interpreter(bindings, self.max_steps, self.max_string_length).run(program)
        except EvaluationError as e:
            logger.warning(f"脚本执行失败: {snippet!r}: {e}")
            return EVAL_FAILED
        except Exception as e:
            logger.warning(f"脚本执行失败: {snippet!r}: {type(e).__name__}: {e}")
            return EVAL_FAILED

        return None if result is UNDEFINED else result
