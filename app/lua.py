"""
Restricted Lua data evaluator.

Scenario descriptors written by the map editor are Lua chunks made of global
assignments whose values are literals and table constructors. This module
evaluates exactly that subset: no function is ever called except the identity
wrappers the editor emits (STRING, FLOAT, BOOLEAN), so evaluating an
untrusted descriptor cannot run code.
"""
import re
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Tuple


class LuaSyntaxError(ValueError):
    def __init__(self, message: str, line: int):
        self.line = line
        super().__init__(f"line {line}: {message}")


class LuaTable(Mapping):
    """Immutable Lua table. Positional fields are stored under keys 1..n."""

    __slots__ = ("_items",)

    def __init__(self, items: Optional[Dict[Any, Any]] = None):
        self._items = dict(items or {})

    def __getitem__(self, key):
        return self._items[_normalize_key(key)]

    def __iter__(self) -> Iterator:
        return iter(self._items)

    def __len__(self) -> int:
        # Lua length operator: the border starting at index 1
        n = 0
        while (n + 1) in self._items:
            n += 1
        return n

    def get(self, key, default=None):
        return self._items.get(_normalize_key(key), default)

    def keys(self):
        return self._items.keys()

    def __contains__(self, key):
        return _normalize_key(key) in self._items

    def __eq__(self, other):
        if isinstance(other, LuaTable):
            return self._items == other._items
        return NotImplemented

    def __hash__(self):
        return id(self)

    def __repr__(self):
        return f"LuaTable({self._items!r})"


def _normalize_key(key):
    if isinstance(key, float) and key.is_integer():
        return int(key)
    return key


def tostring(value) -> str:
    """Lua 5.1 tostring for strings and numbers."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return "%.14g" % value
    raise TypeError(f"cannot convert {type(value).__name__} to string")


TOKEN_SPEC = [
    ("LONGCOMMENT", r"--\[(?P<lc_eq>=*)\[.*?\](?P=lc_eq)\]"),
    ("COMMENT", r"--[^\n]*"),
    ("LONGSTRING", r"\[(?P<ls_eq>=*)\[.*?\](?P=ls_eq)\]"),
    ("NUMBER", r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"),
    ("STRING", r"\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'"),
    ("NAME", r"[A-Za-z_][A-Za-z0-9_]*"),
    ("CONCAT", r"\.\."),
    ("OP", r"[=\{\}\[\]\(\),;\-]"),
    ("NEWLINE", r"\n"),
    ("SPACE", r"[ \t\r\f\v]+"),
    ("MISMATCH", r"."),
]
TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in TOKEN_SPEC), re.DOTALL)

KEYWORDS = {"true", "false", "nil", "local", "not", "and", "or", "function", "end", "return"}

ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "a": "\a", "b": "\b", "f": "\f", "v": "\v",
    "\\": "\\", '"': '"', "'": "'", "\n": "\n",
}

# Wrappers the map editor writes around literal values
IDENTITY_FUNCTIONS = {"STRING", "FLOAT", "BOOLEAN"}


def _unescape(body: str, line: int) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        i += 1
        if i >= len(body):
            raise LuaSyntaxError("unfinished escape sequence", line)
        esc = body[i]
        if esc in ESCAPES:
            out.append(ESCAPES[esc])
            i += 1
        elif esc.isdigit():
            digits = re.match(r"\d{1,3}", body[i:]).group(0)
            code = int(digits)
            if code > 255:
                raise LuaSyntaxError("escape sequence too large", line)
            out.append(chr(code))
            i += len(digits)
        else:
            raise LuaSyntaxError(f"invalid escape sequence '\\{esc}'", line)
    return "".join(out)


def _long_bracket_body(text: str) -> str:
    level = text.index("[", 1) - 1
    body = text[level + 2:len(text) - level - 2]
    # A newline immediately following the opening bracket is skipped
    if body.startswith("\r\n"):
        return body[2:]
    if body.startswith("\n"):
        return body[1:]
    return body


def tokenize(source: str) -> List[Tuple[str, Any, int]]:
    tokens = []
    line = 1
    for match in TOKEN_RE.finditer(source):
        kind = match.lastgroup
        text = match.group(kind)
        if kind == "NEWLINE":
            line += 1
            continue
        if kind in ("SPACE", "COMMENT"):
            continue
        if kind == "LONGCOMMENT":
            line += text.count("\n")
            continue
        if kind == "MISMATCH":
            raise LuaSyntaxError(f"unexpected symbol '{text}'", line)

        if kind == "NUMBER":
            if text.lower().startswith("0x"):
                value = int(text, 16)
            elif re.fullmatch(r"\d+", text):
                value = int(text)
            else:
                value = float(text)
            tokens.append(("NUMBER", value, line))
        elif kind == "STRING":
            tokens.append(("STRING", _unescape(text[1:-1], line), line))
        elif kind == "LONGSTRING":
            tokens.append(("STRING", _long_bracket_body(text), line))
            line += text.count("\n")
        elif kind == "NAME":
            tokens.append(("KEYWORD" if text in KEYWORDS else "NAME", text, line))
        elif kind == "CONCAT":
            tokens.append(("CONCAT", text, line))
        else:
            tokens.append(("OP", text, line))
    tokens.append(("EOF", None, line))
    return tokens


class _Parser:
    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0
        self.env: Dict[str, Any] = {}

    @property
    def current(self):
        return self.tokens[self.pos]

    def _next(self):
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _check(self, kind, value=None):
        tkind, tvalue, _ = self.current
        return tkind == kind and (value is None or tvalue == value)

    def _accept(self, kind, value=None):
        if self._check(kind, value):
            return self._next()
        return None

    def _expect(self, kind, value=None):
        if not self._check(kind, value):
            _, found, line = self.current
            wanted = value if value is not None else kind.lower()
            raise LuaSyntaxError(f"'{wanted}' expected near '{found}'", line)
        return self._next()

    def chunk(self) -> LuaTable:
        while not self._check("EOF"):
            self.statement()
            self._accept("OP", ";")
        return LuaTable(self.env)

    def statement(self):
        self._accept("KEYWORD", "local")
        _, name, _ = self._expect("NAME")
        self._expect("OP", "=")
        value = self.expression()
        if value is None:
            self.env.pop(name, None)
        else:
            self.env[name] = value

    def expression(self):
        _, _, line = self.current
        value = self.unary()
        if not self._check("CONCAT"):
            return value
        parts = [value]
        while self._accept("CONCAT"):
            parts.append(self.unary())
        for part in parts:
            if isinstance(part, bool) or not isinstance(part, (str, int, float)):
                raise LuaSyntaxError("attempt to concatenate a non-string value", line)
        return "".join(tostring(part) for part in parts)

    def unary(self):
        token = self._accept("OP", "-")
        if token:
            value = self.unary()
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise LuaSyntaxError("attempt to negate a non-number value", token[2])
            return -value
        return self.primary()

    def primary(self):
        kind, value, line = self._next()
        if kind in ("NUMBER", "STRING"):
            return value
        if kind == "KEYWORD":
            if value == "true":
                return True
            if value == "false":
                return False
            if value == "nil":
                return None
        if kind == "OP" and value == "{":
            return self.table()
        if kind == "OP" and value == "(":
            inner = self.expression()
            self._expect("OP", ")")
            return inner
        if kind == "NAME":
            if self._check("OP", "("):
                return self.call(value, line)
            if value in self.env:
                return self.env[value]
            raise LuaSyntaxError(f"unknown name '{value}'", line)
        raise LuaSyntaxError(f"unexpected symbol near '{value}'", line)

    def call(self, name, line):
        if name not in IDENTITY_FUNCTIONS:
            raise LuaSyntaxError(f"call to '{name}' is not allowed", line)
        self._expect("OP", "(")
        value = self.expression()
        self._expect("OP", ")")
        return value

    def table(self) -> LuaTable:
        items: Dict[Any, Any] = {}
        index = 1
        while not self._check("OP", "}"):
            if self._accept("OP", "["):
                _, _, line = self.current
                key = _normalize_key(self.expression())
                if key is None:
                    raise LuaSyntaxError("table index is nil", line)
                self._expect("OP", "]")
                self._expect("OP", "=")
                value = self.expression()
                self._store(items, key, value)
            elif self._check("NAME") and self.tokens[self.pos + 1][:2] == ("OP", "="):
                _, key, _ = self._next()
                self._next()
                self._store(items, key, self.expression())
            else:
                self._store(items, index, self.expression())
                index += 1
            if not (self._accept("OP", ",") or self._accept("OP", ";")):
                break
        self._expect("OP", "}")
        return LuaTable(items)

    @staticmethod
    def _store(items, key, value):
        if value is None:
            items.pop(key, None)
        else:
            items[key] = value


def loads(source: str) -> LuaTable:
    """Evaluate a descriptor chunk and return its globals as a LuaTable."""
    return _Parser(tokenize(source)).chunk()


def load_file(path, encoding="latin-1") -> LuaTable:
    with open(path, "r", encoding=encoding) as lua_file:
        return loads(lua_file.read())
