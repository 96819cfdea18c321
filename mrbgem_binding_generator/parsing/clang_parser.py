#!/usr/bin/env python3
"""
Clang-based parsing of vendor headers.

This module traverses C++ headers using libclang and produces `ClassInfo`
entries holding the public methods of every class or struct defined in the
header itself. Declarations pulled in through `#include` are ignored, they
belong to the header that defines them.

Key behavior:
- Only CXX_METHOD cursors are collected: constructors, destructors and
  function templates cannot be called from the VM.
- Methods with a public or unknown (INVALID) access specifier are kept.
- Types are recorded with their written spelling (`type.spelling`), not the
  canonical one, so `uint8_t` stays `uint8_t` in generated names.
- Enums nested in a class are attached to it; `extract_enums` returns both
  the top-level and the class-nested ones.

Requirements:
- Python clang bindings (pip install libclang)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

logger = logging.getLogger(__name__)

try:
    from clang import cindex  # type: ignore
except Exception:  # pragma: no cover
    cindex = None  # Lazy error on use

from ..exceptions import ParseError, ParseUnavailableError
from ..models import ClassInfo, EnumInfo, EnumValue, MethodInfo, ParameterInfo
from .base import PathLike, SignatureParser

DEFAULT_CLANG_ARGS: Sequence[str] = ("-x", "c++", "-std=c++17")

_CLASS_KINDS = ("CLASS_DECL", "STRUCT_DECL")
_KEPT_ACCESS = ("PUBLIC", "INVALID")


# --------------------------
# libclang setup
# --------------------------

def ensure_libclang_loaded() -> None:
    """
    Ensure clang.cindex is importable and the shared library can be loaded.
    """
    if cindex is None:
        raise ParseUnavailableError(
            "libclang (clang.cindex) is not available. Install the clang Python bindings "
            "(e.g., pip install libclang)."
        )
    try:
        cindex.Index.create()
    except Exception as e:
        raise ParseUnavailableError(f"libclang could not be loaded: {e}") from e


def parse_translation_unit(header: Path, clang_args: Sequence[str]):
    """
    Parse a single header, skipping function bodies and tolerating missing includes.
    """
    ensure_libclang_loaded()
    idx = cindex.Index.create()
    options = (
        cindex.TranslationUnit.PARSE_SKIP_FUNCTION_BODIES
        | cindex.TranslationUnit.PARSE_INCOMPLETE
    )
    try:
        tu = idx.parse(str(header), args=list(clang_args), options=options)
    except cindex.TranslationUnitLoadError as e:
        raise ParseError(f"libclang failed to parse {header}: {e}", {"header": str(header)}) from e
    if tu is None:
        raise ParseError(f"libclang returned no translation unit for {header}", {"header": str(header)})
    return tu


# --------------------------
# Helpers
# --------------------------

def _kind_name(node: Any) -> str:
    return getattr(getattr(node, "kind", None), "name", "")


def _is_in_file(node: Any, header: Path) -> bool:
    loc = getattr(node, "location", None)
    if loc is None or loc.file is None:
        return False
    try:
        return Path(str(loc.file.name)).resolve() == header
    except OSError:
        return False


def _is_kept_access(node: Any) -> bool:
    acc = getattr(node, "access_specifier", None)
    return getattr(acc, "name", "INVALID") in _KEPT_ACCESS


def _call_flag(node: Any, attr: str) -> bool:
    fn = getattr(node, attr, None)
    if fn is None:
        return False
    try:
        return bool(fn())
    except Exception as ex:
        logger.debug("Cursor %s: %s() failed: %s", getattr(node, "spelling", "<unnamed>"), attr, ex)
        return False


def _parse_method(node: Any) -> MethodInfo:
    params = tuple(
        ParameterInfo(type=arg.type.spelling, name=arg.spelling or None)
        for arg in node.get_arguments()
    )
    return MethodInfo(
        name=node.spelling,
        return_type=node.result_type.spelling,
        parameters=params,
        is_static=_call_flag(node, "is_static_method"),
        is_const=_call_flag(node, "is_const_method"),
        is_virtual=_call_flag(node, "is_virtual_method"),
    )


def _parse_enum(node: Any) -> Optional[EnumInfo]:
    if not node.spelling or not node.is_definition():
        return None
    values = tuple(
        EnumValue(name=c.spelling, value=str(c.enum_value))
        for c in node.get_children()
        if _kind_name(c) == "ENUM_CONSTANT_DECL"
    )
    return EnumInfo(name=node.spelling, values=values, is_scoped=_call_flag(node, "is_scoped_enum"))


def _parse_class(node: Any, header: Path) -> ClassInfo:
    methods: List[MethodInfo] = []
    enums: List[EnumInfo] = []
    for c in node.get_children():
        ck = _kind_name(c)
        if ck == "CXX_METHOD":
            if not _is_kept_access(c):
                continue
            methods.append(_parse_method(c))
        elif ck == "ENUM_DECL" and _is_kept_access(c):
            ei = _parse_enum(c)
            if ei is not None:
                enums.append(ei)
    return ClassInfo(name=node.spelling, methods=tuple(methods), enums=tuple(enums), header=str(header))


# --------------------------
# Parser
# --------------------------

class ClangParser(SignatureParser):
    """
    Parse headers with libclang. Constructing the parser checks that libclang loads.
    """

    name = "libclang"

    def __init__(self, include_paths: Sequence[PathLike] = (), extra_args: Sequence[str] = ()) -> None:
        super().__init__(include_paths)
        ensure_libclang_loaded()
        self.clang_args = list(DEFAULT_CLANG_ARGS)
        self.clang_args.extend(f"-I{p}" for p in self.include_paths)
        self.clang_args.extend(extra_args)

    def _translation_unit(self, header: PathLike):
        path = self._require(header).resolve()
        tu = parse_translation_unit(path, self.clang_args)
        # Missing vendor includes are expected; PARSE_INCOMPLETE keeps going.
        for diag in tu.diagnostics:
            logger.debug("[clang] %s", diag)
        return path, tu

    def extract_classes(self, header: PathLike) -> List[ClassInfo]:
        path, tu = self._translation_unit(header)
        classes: List[ClassInfo] = []

        def visit(node: Any) -> None:
            for c in node.get_children():
                ck = _kind_name(c)
                if ck == "NAMESPACE":
                    visit(c)
                    continue
                if ck not in _CLASS_KINDS or not _is_in_file(c, path):
                    continue
                if not c.is_definition() or not c.spelling or not _is_kept_access(c):
                    # Forward declaration, anonymous or non-public nested class
                    continue
                classes.append(_parse_class(c, path))
                # Public nested classes
                visit(c)

        visit(tu.cursor)
        return classes

    def extract_enums(self, header: PathLike) -> List[EnumInfo]:
        path, tu = self._translation_unit(header)
        enums: List[EnumInfo] = []

        def visit(node: Any) -> None:
            for c in node.get_children():
                ck = _kind_name(c)
                if ck == "NAMESPACE" or (ck in _CLASS_KINDS and _is_in_file(c, path)):
                    visit(c)
                elif ck == "ENUM_DECL" and _is_in_file(c, path) and _is_kept_access(c):
                    ei = _parse_enum(c)
                    if ei is not None:
                        enums.append(ei)

        visit(tu.cursor)
        return enums


__all__ = [
    "ClangParser",
    "DEFAULT_CLANG_ARGS",
    "parse_translation_unit",
    "ensure_libclang_loaded",
]
