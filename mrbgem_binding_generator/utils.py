#!/usr/bin/env python3
"""
Shared plumbing for the mrbgem binding generator: log setup, Jinja2 rendering,
and output writing.

Generated files are staged in a scratch directory beside the gem and only moved
into place once every artifact rendered, so an aborted run leaves the previous
gem as it was.
"""

from __future__ import annotations

import filecmp
import os
import shutil
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, TextIO, Union
import logging

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, PackageLoader, StrictUndefined, TemplateNotFound

from .exceptions import GenerationError
from .type_mapping import ruby_type_name

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "mrbgem_binding_generator"
DEFAULT_LOG_FORMAT = "%(levelname)s: %(message)s"
FILE_MODE = 0o644


def _as_level(level: Optional[Union[int, str]]) -> int:
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def configure_logging(
    level: Optional[Union[int, str]] = None,
    *,
    to_file: Optional[Union[str, Path]] = None,
    fmt: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Install console (and optionally file) handlers on the root logger.

    Any handlers already on the root logger are replaced, so calling this twice
    does not duplicate output. `level` accepts a logging constant or its name;
    unknown names fall back to INFO.
    """
    resolved = _as_level(level)
    handlers: List[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if to_file:
        handlers.append(logging.FileHandler(str(to_file), mode="w"))
    for handler in handlers:
        handler.setLevel(resolved)
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    logging.basicConfig(level=resolved, format=fmt or DEFAULT_LOG_FORMAT, handlers=handlers)
    logging.getLogger(PACKAGE_LOGGER).setLevel(resolved)


class TemplateRenderer:
    """
    Renders the gem templates. A user templates directory, when given, is
    searched before the templates bundled with the package, so individual
    files can be overridden by name.
    """

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        search: List[Any] = []
        if templates_dir:
            user_dir = Path(templates_dir)
            if user_dir.is_dir():
                search.append(FileSystemLoader(str(user_dir)))
            else:
                logger.warning("Ignoring templates directory %s: not a directory", user_dir)
        search.append(PackageLoader(PACKAGE_LOGGER, "templates"))

        # Output is C, C++, Ruby and CMake, never HTML.
        self.env = Environment(
            loader=ChoiceLoader(search),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["ruby_type"] = ruby_type_name

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise GenerationError(f"No template named {template_name}", {"template": template_name}) from e
        return template.render(**context)


def ensure_dir(p: Path) -> None:
    Path(p).mkdir(parents=True, exist_ok=True)


def normalize_newlines(text: str) -> str:
    """Convert CRLF and bare CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """
    Replace `path` with `content` (LF line endings) in one rename. Readers see
    either the old file or the new one, never a partial write.
    """
    ensure_dir(path.parent)
    tmp = tempfile.NamedTemporaryFile(
        "w", encoding=encoding, newline="\n", dir=str(path.parent), prefix=f".{path.name}.", delete=False
    )
    try:
        with tmp:
            tmp.write(normalize_newlines(content))
        os.chmod(tmp.name, FILE_MODE)
        os.replace(tmp.name, path)
    except BaseException:
        Path(tmp.name).unlink(missing_ok=True)
        raise


def write_text(path: Path, content: str, encoding: str = "utf-8", dry_run: bool = False) -> None:
    if dry_run:
        logger.info("[dry-run] write %s", path)
        return
    try:
        atomic_write_text(path, content, encoding=encoding)
    except OSError as e:
        raise GenerationError(f"Failed to write {path}: {e}", {"path": str(path)}) from e
    logger.debug("[stage] %s", path)



def _commit_tree(staging: Path, target: Path) -> List[Path]:
    """
    Move every staged file into `target`, skipping files whose content is unchanged.
    """
    written: List[Path] = []
    for src in sorted(p for p in staging.rglob("*") if p.is_file()):
        dest = target / src.relative_to(staging)
        if dest.is_file() and filecmp.cmp(src, dest, shallow=False):
            logger.debug("[skip] %s (unchanged)", dest)
            continue
        ensure_dir(dest.parent)
        os.replace(src, dest)
        logger.info("[write] %s", dest)
        written.append(dest)
    return written


@contextmanager
def staged_output_dir(target: Path, dry_run: bool = False) -> Iterator[Path]:
    """
    Yield a scratch directory to write into; on clean exit its files are moved
    into `target`, on error it is discarded and `target` is left untouched.

    The scratch directory is a sibling of `target` so the moves stay on one
    filesystem. Files already in `target` that the run did not produce are kept.
    """
    target = Path(target)
    if dry_run:
        yield target
        return
    try:
        ensure_dir(target.parent)
        staging = Path(tempfile.mkdtemp(prefix=f".{target.name}.staging-", dir=str(target.parent)))
    except OSError as e:
        raise GenerationError(f"Cannot create staging directory next to {target}: {e}", {"path": str(target)}) from e
    try:
        yield staging
        try:
            _commit_tree(staging, target)
        except OSError as e:
            raise GenerationError(f"Failed to move generated files into {target}: {e}", {"path": str(target)}) from e
    finally:
        shutil.rmtree(staging, ignore_errors=True)


__all__ = [
    "PACKAGE_LOGGER",
    "TemplateRenderer",
    "configure_logging",
    "ensure_dir",
    "normalize_newlines",
    "atomic_write_text",
    "write_text",
    "staged_output_dir",
]
