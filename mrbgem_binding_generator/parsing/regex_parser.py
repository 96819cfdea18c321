"""
Regex fallback parser, used when libclang is unavailable.

Class bodies are found by brace matching. Nested blocks (inline function
bodies, nested types) are cut out before declarations are matched, so they do
not hide the members that follow; enums declared inside a class are attached
to it. Access specifiers are not tracked, and braces inside string literals or
macros can still throw it off. The output has the same shape as the libclang
parser's, only less complete.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from ..headers import read_header
from ..models import ClassInfo, EnumInfo, EnumValue, MethodInfo, ParameterInfo
from .base import PathLike, SignatureParser

logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r"//[^\n]*|/\*.*?\*/", re.DOTALL)
_CLASS_HEAD_RE = re.compile(r"(?<!enum )\b(?:class|struct)\s+(\w+)\s*(?::[^{;]*)?\{")
_METHOD_RE = re.compile(r"(\w+(?:\s*\*)?)\s+(\w+)\s*\(([^)]*)\)\s*(const\s*)?(?:override\s*)?;")
_ENUM_RE = re.compile(r"enum\s+(class\s+|struct\s+)?(\w+)\s*(?::\s*[\w:\s]+?)?\s*\{([^}]*)\}", re.DOTALL)
_ENUM_VALUE_RE = re.compile(r"(\w+)(?:\s*=\s*([^,}]+))?")


def strip_comments(text: str) -> str:
    return _COMMENT_RE.sub(" ", text)


def parse_parameter(text: str) -> Optional[ParameterInfo]:
    """
    Split one parameter declaration into type and name.

    'uint8_t brightness' -> ('uint8_t', 'brightness')
    'const char *name'   -> ('const char*', 'name')
    'int'                -> ('int', None)
    """
    text = text.split("=", 1)[0].strip()
    if not text:
        return None
    parts = text.split()
    if len(parts) == 1:
        return ParameterInfo(type=parts[0])
    type_text, name = " ".join(parts[:-1]), parts[-1]
    # Pointer and reference markers written against the name belong to the type
    stripped = name.lstrip("*&")
    if stripped != name:
        type_text += name[: len(name) - len(stripped)]
        name = stripped
    if not name:
        return ParameterInfo(type=type_text)
    return ParameterInfo(type=type_text, name=name)


def parse_parameters(text: str) -> Tuple[ParameterInfo, ...]:
    text = text.strip()
    if not text or text == "void":
        return ()
    params = (parse_parameter(p) for p in text.split(","))
    return tuple(p for p in params if p is not None)


def parse_methods(body: str, class_name: Optional[str] = None) -> List[MethodInfo]:
    methods: List[MethodInfo] = []
    for m in _METHOD_RE.finditer(body):
        return_type, name, params = m.group(1), m.group(2), m.group(3)
        if name == class_name:
            # 'explicit Foo(int);' is a constructor
            continue
        methods.append(MethodInfo(
            name=name,
            return_type=re.sub(r"\s+\*", "*", return_type),
            parameters=parse_parameters(params),
            is_const=bool(m.group(4)),
        ))
    return methods


def parse_enums(text: str) -> List[EnumInfo]:
    enums: List[EnumInfo] = []
    for m in _ENUM_RE.finditer(text):
        values = tuple(
            EnumValue(name=v.group(1), value=v.group(2).strip() if v.group(2) else None)
            for v in _ENUM_VALUE_RE.finditer(m.group(3))
        )
        enums.append(EnumInfo(name=m.group(2), values=values, is_scoped=bool(m.group(1))))
    return enums


def _closing_brace(text: str, open_index: int) -> int:
    depth = 0
    for i in range(open_index, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i
    return len(text)


def top_level_text(body: str) -> str:
    """
    `body` with every nested `{...}` block replaced by `;`.

    'void f() { g(); } int h();' -> 'void f() ; int h();'
    """
    out: List[str] = []
    depth = 0
    for ch in body:
        if ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 1:
                out.append(";")
            depth = max(depth - 1, 0)
        elif depth == 0:
            out.append(ch)
    return "".join(out)


class RegexParser(SignatureParser):
    name = "regex"

    def _source(self, header: PathLike) -> str:
        return strip_comments(read_header(header))

    def extract_classes(self, header: PathLike) -> List[ClassInfo]:
        source = self._source(header)
        classes: List[ClassInfo] = []
        pos = 0
        while True:
            m = _CLASS_HEAD_RE.search(source, pos)
            if m is None:
                break
            end = _closing_brace(source, m.end() - 1)
            body = source[m.end():end]
            # Nested types are not reported as classes of their own
            pos = end + 1

            name = m.group(1)
            methods = parse_methods(top_level_text(body), class_name=name)
            enums = parse_enums(body)
            logger.debug(
                "[regex] %s: class %s with %d method(s), %d enum(s)", header, name, len(methods), len(enums),
            )
            classes.append(ClassInfo(name=name, methods=tuple(methods), enums=tuple(enums), header=str(header)))
        return classes

    def extract_enums(self, header: PathLike) -> List[EnumInfo]:
        return parse_enums(self._source(header))


__all__ = [
    "RegexParser",
    "strip_comments",
    "parse_parameter",
    "parse_parameters",
    "parse_methods",
    "parse_enums",
    "top_level_text",
]
