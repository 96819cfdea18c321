"""
Parser selection.

`select_parser` picks the implementation once, at startup: libclang when the
bindings import and the shared library loads, otherwise the regex fallback.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..exceptions import ParseUnavailableError
from .base import PathLike, SignatureParser
from .clang_parser import ClangParser
from .regex_parser import RegexParser

logger = logging.getLogger(__name__)


def select_parser(include_paths: Sequence[PathLike] = (), prefer_regex: bool = False) -> SignatureParser:
    if prefer_regex:
        logger.info("Using regex parser (requested)")
        return RegexParser(include_paths)
    try:
        parser = ClangParser(include_paths)
    except ParseUnavailableError as e:
        logger.warning("%s Falling back to the regex parser; extraction will be less complete.", e.message)
        return RegexParser(include_paths)
    logger.info("Using libclang parser")
    return parser


__all__ = ["select_parser"]
