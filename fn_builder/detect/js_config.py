"""Declarative reader for JavaScript framework config files.

Framework configs such as ``nuxt.config.js`` are executable modules. The
pipeline never evaluates them; it reads the exported object literal and keeps
only values that are plain data (strings, numbers, booleans, null, arrays and
nested objects). Anything else (function calls, identifiers, template
strings with substitutions, spreads, methods) is skipped and its key reported
in ``ConfigParseResult.skipped``.

Supported export forms::

    export default { ... }
    export default defineNuxtConfig({ ... })
    module.exports = { ... }
    const config = { ... }; export default config
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from fn_builder.errors import SourceError

_EXPORT_RE = re.compile(r"\bexport\s+default\b|\bmodule\.exports\s*=")
_BARE_EXPORT_RE = re.compile(r"\s*([A-Za-z_$][\w$]*)[ \t]*(?:;|\r?\n|\Z)")

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+|//[^\n]*|/\*.*?\*/)
  | (?P<str>'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")
  | (?P<tpl>`(?:\\.|[^`\\])*`)
  | (?P<num>(?:0[xX][0-9a-fA-F]+|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?))
  | (?P<ident>[A-Za-z_$][\w$]*)
  | (?P<punct>\.\.\.|=>|[{}\[\](),:;.?!=<>+\-*/%&|^~])
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
_CLOSERS = {"{": "}", "[": "]", "(": ")"}


class _Opaque:
    def __repr__(self) -> str:
        return "<opaque>"


OPAQUE = _Opaque()


@dataclass
class ConfigParseResult:
    data: dict[str, Any]
    skipped: list[str] = field(default_factory=list)


@dataclass
class _Tok:
    kind: str
    text: str
    pos: int


def _unquote(text: str) -> str:
    body = text[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        c = body[i]
        if c == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            if nxt == "u" and re.fullmatch(r"[0-9a-fA-F]{4}", body[i + 2 : i + 6]):
                out.append(chr(int(body[i + 2 : i + 6], 16)))
                i += 6
                continue
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(c)
        i += 1
    return "".join(out)


def _tokenize(src: str, start: int) -> list[_Tok]:
    toks: list[_Tok] = []
    pos = start
    while pos < len(src):
        m = _TOKEN_RE.match(src, pos)
        if not m:
            toks.append(_Tok("other", src[pos], pos))
            pos += 1
            continue
        kind = m.lastgroup or "other"
        if kind != "ws":
            toks.append(_Tok(kind, m.group(), pos))
        pos = m.end()
    return toks


class _Parser:
    def __init__(self, toks: list[_Tok]) -> None:
        self.toks = toks
        self.i = 0
        self.skipped: list[str] = []

    def peek(self, offset: int = 0) -> _Tok | None:
        j = self.i + offset
        return self.toks[j] if j < len(self.toks) else None

    def next(self) -> _Tok:
        tok = self.peek()
        if tok is None:
            raise SourceError("Unexpected end of config file")
        self.i += 1
        return tok

    def at(self, text: str) -> bool:
        tok = self.peek()
        return tok is not None and tok.kind in {"punct", "other"} and tok.text == text

    def expect(self, text: str) -> None:
        tok = self.next()
        if tok.text != text:
            raise SourceError(f"Expected {text!r} in config at offset {tok.pos}, got {tok.text!r}")

    def skip_expression(self) -> None:
        """Skip tokens up to the next top-level ``,`` or closing bracket."""
        depth = 0
        while (tok := self.peek()) is not None:
            if tok.kind == "punct":
                if tok.text in _CLOSERS:
                    depth += 1
                elif tok.text in {"}", "]", ")"}:
                    if depth == 0:
                        return
                    depth -= 1
                elif tok.text == "," and depth == 0:
                    return
            self.i += 1

    def value(self, path: str) -> Any:
        tok = self.peek()
        if tok is None:
            raise SourceError("Unexpected end of config file")
        start = self.i
        result: Any = OPAQUE
        if tok.kind == "punct" and tok.text == "{":
            result = self.obj(path)
        elif tok.kind == "punct" and tok.text == "[":
            result = self.arr(path)
        elif tok.kind == "str":
            self.i += 1
            result = _unquote(tok.text)
        elif tok.kind == "tpl" and "${" not in tok.text:
            self.i += 1
            result = _unquote(tok.text)
        elif tok.kind == "num":
            self.i += 1
            result = _number(tok.text)
        elif tok.kind == "punct" and tok.text == "-" and (n := self.peek(1)) and n.kind == "num":
            self.i += 2
            result = -_number(n.text)
        elif tok.kind == "ident" and tok.text in {"true", "false", "null", "undefined"}:
            self.i += 1
            result = {"true": True, "false": False}.get(tok.text)
        # Anything left before the next separator makes the whole value opaque.
        nxt = self.peek()
        if result is OPAQUE or (nxt is not None and not _is_separator(nxt)):
            self.i = start
            self.skip_expression()
            return OPAQUE
        return result

    def key(self) -> str | None:
        tok = self.next()
        if tok.kind == "ident" or tok.kind == "num":
            return tok.text
        if tok.kind == "str":
            return _unquote(tok.text)
        if tok.kind == "punct" and tok.text == "[":
            self.i -= 1
            self.skip_bracketed()
            return None
        raise SourceError(f"Unsupported object key {tok.text!r} at offset {tok.pos}")

    def skip_bracketed(self) -> None:
        opener = self.next().text
        closer = _CLOSERS[opener]
        depth = 1
        while depth:
            tok = self.next()
            if tok.kind != "punct":
                continue
            if tok.text == opener:
                depth += 1
            elif tok.text == closer:
                depth -= 1

    def obj(self, path: str) -> dict[str, Any]:
        self.expect("{")
        out: dict[str, Any] = {}
        while not self.at("}"):
            if self.at("..."):
                self.i += 1
                self.skip_expression()
                self.skipped.append(f"{path}...")
            else:
                name = self.key()
                full = f"{path}.{name}" if path and name is not None else (name or path)
                if self.at(":"):
                    self.i += 1
                    val = self.value(full)
                elif self.at("("):
                    # method shorthand: name(args) { body }
                    self.skip_bracketed()
                    if self.at("{"):
                        self.skip_bracketed()
                    val = OPAQUE
                elif self.at(",") or self.at("}"):
                    # shorthand property `{ foo }`
                    val = OPAQUE
                else:
                    # accessors and other non-data members
                    self.skip_expression()
                    val = OPAQUE
                if name is None or val is OPAQUE:
                    self.skipped.append(full or "<computed>")
                else:
                    out[name] = val
            if self.at(","):
                self.i += 1
            elif not self.at("}"):
                tok = self.peek()
                raise SourceError(
                    f"Unexpected token {tok.text if tok else 'EOF'!r} in config object"
                )
        self.expect("}")
        return out

    def arr(self, path: str) -> list[Any]:
        self.expect("[")
        out: list[Any] = []
        idx = 0
        while not self.at("]"):
            if self.at("..."):
                self.i += 1
                self.skip_expression()
                self.skipped.append(f"{path}[{idx}]")
            else:
                val = self.value(f"{path}[{idx}]")
                if val is OPAQUE:
                    self.skipped.append(f"{path}[{idx}]")
                else:
                    out.append(val)
            idx += 1
            if self.at(","):
                self.i += 1
            elif not self.at("]"):
                raise SourceError("Unexpected token in config array")
        self.expect("]")
        return out


def _is_separator(tok: _Tok) -> bool:
    return tok.kind == "punct" and tok.text in {",", "}", "]", ")", ";"}


def _number(text: str) -> int | float:
    if text.lower().startswith("0x"):
        return int(text, 16)
    f = float(text)
    return int(f) if f.is_integer() and not any(c in text for c in ".eE") else f


def _object_at(src: str, start: int) -> ConfigParseResult:
    parser = _Parser(_tokenize(src, start))
    # wrapper({ ... })
    if (tok := parser.peek()) and tok.kind == "ident" and parser.peek(1) and parser.peek(1).text == "(":
        parser.i += 2
    if not parser.at("{"):
        raise SourceError("Config file must export an object literal")
    data = parser.obj("")
    return ConfigParseResult(data=data, skipped=parser.skipped)


def parse_config_source(src: str) -> ConfigParseResult:
    """Extract the exported object literal of a JS config module."""
    m = _EXPORT_RE.search(src)
    if not m:
        raise SourceError("Config file has no `export default` or `module.exports`")
    bare = _BARE_EXPORT_RE.match(src, m.end())
    if not bare:
        return _object_at(src, m.end())
    # export default config, with `const config = { ... }` earlier in the file
    name = bare.group(1)
    binding = re.search(rf"\b(?:const|let|var)\s+{re.escape(name)}\s*=", src)
    if not binding:
        raise SourceError(f"Exported name {name!r} is not declared in the config file")
    return _object_at(src, binding.end())


__all__ = ["OPAQUE", "ConfigParseResult", "parse_config_source"]
