import sys
import os
import platform
import shlex
from datetime import datetime, timezone
from importlib import metadata as importlib_metadata

import json
from pathlib import Path
from typing import Optional, Sequence
from .models import ClassInfo, GenerationContext, GenerationStats
from .utils import write_text

import logging
logger = logging.getLogger(__name__)

GENERATOR_NAME = "mrbgem-binding-generator"


def generator_version() -> str:
    try:
        return importlib_metadata.version(GENERATOR_NAME)
    except importlib_metadata.PackageNotFoundError:
        return "unknown"


def build_manifest(
    ctx: GenerationContext,
    classes: Sequence[ClassInfo],
    stats: GenerationStats,
    parser_name: Optional[str] = None,
) -> dict:
    """
    Describe one generation run: generator, invocation, configuration, the
    bound classes and what was left out. Useful for debugging and testing.
    """
    argv = list(getattr(sys, "argv", []) or [])
    command_line = " ".join(shlex.quote(a) for a in argv) if argv else ""

    env_info = {
        "python_version": sys.version,
        "python_executable": sys.executable,
        "platform": platform.platform(),
        "cwd": os.getcwd(),
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }

    return {
        "generator": {
            "name": GENERATOR_NAME,
            "version": generator_version(),
            "parser": parser_name or "unknown",
        },
        "invocation": {
            "argv": argv,
            "command_line": command_line,
        },
        "environment": env_info,
        "context": ctx.to_dict(),
        "stats": stats.to_dict(),
        "class_count": len(classes),
        "classes": [c.to_dict() for c in classes],
    }


def emit_manifest(
    ctx: GenerationContext,
    classes: Sequence[ClassInfo],
    stats: GenerationStats,
    parser_name: Optional[str] = None,
    root: Optional[Path] = None,
) -> Path:
    """
    Write `manifest.json` under `root` (defaults to the context's output directory).
    """
    manifest = build_manifest(ctx, classes, stats, parser_name=parser_name)
    manifest_path = Path(root or ctx.output_dir) / "manifest.json"
    write_text(manifest_path, json.dumps(manifest, indent=2) + "\n", dry_run=ctx.dry_run)
    return manifest_path
