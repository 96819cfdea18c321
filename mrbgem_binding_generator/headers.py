"""
Header discovery and reading.

Headers live under the conventional `src/` and `include/` directories of a
vendor library checkout. Listing is sorted so that every downstream artifact
comes out in a deterministic order.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Sequence, Union

from .exceptions import HeaderNotFoundError

logger = logging.getLogger(__name__)

SEARCH_DIRS: Sequence[str] = ("src", "include")
HEADER_SUFFIXES: Sequence[str] = (".h", ".hpp", ".hh", ".hxx")

PathLike = Union[str, Path]


def list_headers(root: PathLike, search_dirs: Sequence[str] = SEARCH_DIRS) -> List[Path]:
    """
    All `*.h` files below `root/src` and `root/include`, sorted.
    """
    headers: List[Path] = []
    for d in search_dirs:
        dir_path = Path(root) / d
        if not dir_path.is_dir():
            logger.debug("Search directory %s does not exist; skipping", dir_path)
            continue
        headers.extend(p for p in dir_path.rglob("*.h") if p.is_file())
    return sorted(headers)


def read_header(path: PathLike) -> str:
    p = Path(path)
    if not p.exists():
        raise HeaderNotFoundError(p)
    return p.read_text(encoding="utf-8", errors="replace")


def expand_header_paths(paths: Iterable[PathLike]) -> List[Path]:
    """
    Expand files and directories into a unique, sorted list of header files.

    Unlike directory discovery, an explicitly named file that does not exist
    is an error: the caller asked for it.
    """
    results: List[Path] = []
    for p in paths:
        pp = Path(p)
        if pp.is_dir():
            for ext in HEADER_SUFFIXES:
                results.extend(pp.rglob(f"*{ext}"))
        elif pp.is_file():
            results.append(pp)
        else:
            raise HeaderNotFoundError(pp)
    return sorted({f.resolve() for f in results})


class HeaderSource:
    """
    Headers of one library checkout rooted at `root`.
    """

    def __init__(self, root: PathLike, search_dirs: Sequence[str] = SEARCH_DIRS) -> None:
        self.root = Path(root)
        self.search_dirs = tuple(search_dirs)

    def list_headers(self) -> List[Path]:
        return list_headers(self.root, self.search_dirs)

    def read(self, path: PathLike) -> str:
        return read_header(path)

    def include_paths(self) -> List[Path]:
        """
        Existing search directories, forwarded to the AST parser as `-I` paths.
        """
        return [self.root / d for d in self.search_dirs if (self.root / d).is_dir()]


__all__ = [
    "SEARCH_DIRS",
    "list_headers",
    "read_header",
    "expand_header_paths",
    "HeaderSource",
]
