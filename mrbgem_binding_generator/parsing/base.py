"""
Common interface of the signature parsers.

Both implementations turn one header into `ClassInfo` objects of the same
shape, so nothing downstream knows which one ran.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Union

from ..exceptions import HeaderNotFoundError
from ..models import ClassInfo, EnumInfo

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class SignatureParser(ABC):
    """
    Extracts classes (public methods only) and enums from C++ headers.
    """

    #: Short identifier reported in logs and the manifest.
    name: str = "base"

    def __init__(self, include_paths: Sequence[PathLike] = ()) -> None:
        self.include_paths = [Path(p) for p in include_paths]

    @abstractmethod
    def extract_classes(self, header: PathLike) -> List[ClassInfo]:
        ...

    @abstractmethod
    def extract_enums(self, header: PathLike) -> List[EnumInfo]:
        """
        Top-level and class-nested enums of `header`, in declaration order.
        """

    @staticmethod
    def _require(header: PathLike) -> Path:
        p = Path(header)
        if not p.is_file():
            raise HeaderNotFoundError(p)
        return p

    def parse_headers(self, headers: Iterable[PathLike]) -> List[ClassInfo]:
        """
        Extract classes from every header, in order. A class seen in several
        headers is merged into its first occurrence (methods appended, enums
        added unless already present).
        """
        class_map: Dict[str, ClassInfo] = {}
        for header in headers:
            classes = self.extract_classes(header)
            logger.debug(
                "[%s] %s: %d class(es), %d method(s)",
                self.name, header, len(classes), sum(len(c.methods) for c in classes),
            )
            for ci in classes:
                existing = class_map.get(ci.name)
                if existing is None:
                    class_map[ci.name] = ci
                    continue
                extra_enums = tuple(e for e in ci.enums if e not in existing.enums)
                class_map[ci.name] = replace(
                    existing, methods=existing.methods + ci.methods, enums=existing.enums + extra_enums,
                )
        return list(class_map.values())


__all__ = ["SignatureParser"]
