#!/usr/bin/env python3
"""
Command line front end: turns the C++ headers of a vendor library into a
PicoRuby (mruby/c) mrbgem.

Steps: find headers (src/ and include/ of --root, or explicit --headers), parse
them with libclang or the regex parser, then render the gem into --output-dir:

  mrbgem.rake, CMakeLists.txt, README.md, manifest.json (unless --no-manifest)
  mrblib/<vendor>.rb, src/<vendor>.c, ports/<port>/<vendor>_wrapper.cpp

Example:
  python -m mrbgem_binding_generator.generate_bindings \
    --root path/to/M5Unified --output-dir build/picoruby-m5unified

Exit codes:
  1 templating, override or type rules setup failed
  2 no headers found
  3 parsing failed (including a missing header)
  4 generation failed
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence
import logging

logger = logging.getLogger(__name__)

from .headers import HeaderSource, expand_header_paths
from .models import EnumInfo, GenerationContext, GeneratorConfig
from .overrides import OverrideRegistry, default_registry
from .parsing.selection import select_parser
from .type_mapping import ClassifierConfig, TypeClassifier
from .utils import DEFAULT_LOG_FORMAT, TemplateRenderer, configure_logging
from .emitters.mrbgem_emitter import MrbgemEmitter


# --------------------------
# CLI
# --------------------------

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    defaults = GeneratorConfig()
    p = argparse.ArgumentParser(description="Build a PicoRuby (mruby/c) mrbgem that wraps a C++ library")

    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument(
        "--root",
        default=None,
        help="Library checkout; headers are discovered under its src/ and include/ directories.",
    )
    src.add_argument(
        "--headers",
        action="append",
        default=[],
        help="Header file or directory to parse (repeatable). Directories are searched for .h/.hpp/.hh/.hxx files.",
    )
    p.add_argument(
        "--include-path",
        action="append",
        default=[],
        help="Extra -I directory for libclang (repeatable).",
    )
    p.add_argument(
        "--output-dir",
        default="generated",
        help="Where the gem is written.",
    )
    p.add_argument(
        "--templates-dir",
        default=None,
        help="Directory whose templates replace the bundled ones of the same name.",
    )
    p.add_argument(
        "--overrides",
        action="append",
        default=[],
        help="JSON file with extra override entries (repeatable; later files win).",
    )
    p.add_argument(
        "--no-default-overrides",
        action="store_true",
        help="Do not apply the built-in M5Unified override table.",
    )
    p.add_argument(
        "--regex-parser",
        action="store_true",
        help="Skip libclang and parse with regular expressions.",
    )
    p.add_argument(
        "--type-rules",
        default=None,
        help="JSON file with the object/struct reference naming rules of the wrapped library.",
    )

    # Naming and packaging
    p.add_argument("--vendor-prefix", default=defaults.vendor_prefix, help="Prefix of native function names.")
    p.add_argument("--vm-prefix", default=defaults.vm_prefix, help="Prefix of VM wrapper function names.")
    p.add_argument("--gem-name", default=defaults.gem_name, help="Name written to mrbgem.rake.")
    p.add_argument("--vendor-header", default=defaults.vendor_header, help="Header included by the port wrapper.")
    p.add_argument(
        "--api-accessor",
        default=defaults.api_accessor,
        help="Expression reaching a class instance; '{class_name}' is substituted.",
    )
    p.add_argument("--idf-component", default=defaults.idf_component, help="ESP-IDF component the gem requires.")
    p.add_argument("--port", default=defaults.port, help="Port directory name under ports/.")

    p.add_argument("--no-manifest", action="store_true", help="Skip manifest.json.")
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Discover, parse and filter, log what would be written, write nothing.",
    )

    log = p.add_argument_group("logging")
    log.add_argument("-v", "--verbose", action="count", default=0, help="Log DEBUG messages.")
    log.add_argument("-q", "--quiet", action="count", default=0, help="-q shows warnings only, -qq errors only.")
    log.add_argument(
        "--log-level",
        type=str.upper,
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        default=None,
        help="Set the level directly; wins over -v and -q.",
    )
    log.add_argument("--log-format", default=DEFAULT_LOG_FORMAT, help="Format passed to logging.Formatter.")
    log.add_argument("--log-file", default=None, help="Also write the log to this file.")

    return p.parse_args(argv)


def resolve_log_level(ns: argparse.Namespace) -> int:
    if ns.log_level:
        return getattr(logging, ns.log_level)
    if ns.verbose >= 1:
        return logging.DEBUG
    if ns.quiet >= 2:
        return logging.ERROR
    if ns.quiet == 1:
        return logging.WARNING
    return logging.INFO


def build_registry(ns: argparse.Namespace) -> OverrideRegistry:
    registry = OverrideRegistry() if ns.no_default_overrides else default_registry()
    for path in ns.overrides:
        registry = registry.merged(OverrideRegistry.from_json(path))
    return registry


# --------------------------
# Main
# --------------------------

def main(argv: Optional[Sequence[str]] = None) -> int:
    ns = parse_args(argv)

    configure_logging(level=resolve_log_level(ns), to_file=ns.log_file, fmt=ns.log_format)

    config = GeneratorConfig(
        vendor_prefix=ns.vendor_prefix,
        vm_prefix=ns.vm_prefix,
        gem_name=ns.gem_name,
        vendor_header=ns.vendor_header,
        api_accessor=ns.api_accessor,
        idf_component=ns.idf_component,
        port=ns.port,
    )
    ctx = GenerationContext(
        output_dir=Path(ns.output_dir).resolve(),
        config=config,
        templates_dir=Path(ns.templates_dir).resolve() if ns.templates_dir else None,
        emit_manifest=not ns.no_manifest,
        dry_run=ns.dry_run,
    )

    try:
        renderer = TemplateRenderer(ctx.templates_dir)
        registry = build_registry(ns)
        classifier = TypeClassifier(ClassifierConfig.from_json(ns.type_rules) if ns.type_rules else None)
    except Exception:
        logger.exception("Could not load templates, override or type rules files")
        return 1

    # Discover headers
    include_paths: List[Path] = [Path(p) for p in ns.include_path]
    try:
        if ns.root:
            source = HeaderSource(ns.root)
            headers = source.list_headers()
            include_paths = source.include_paths() + include_paths
        else:
            headers = expand_header_paths(ns.headers)
    except Exception:
        logger.exception("Header discovery failed")
        return 3
    if not headers:
        logger.error("Nothing to parse: no headers under the given --root or --headers")
        return 2
    logger.info("%d header(s) to parse", len(headers))

    # Parse classes and enums
    parser = select_parser(include_paths, prefer_regex=ns.regex_parser)
    try:
        classes = parser.parse_headers(headers)
        enums: List[EnumInfo] = []
        for h in headers:
            enums.extend(parser.extract_enums(h))
    except Exception:
        logger.exception("Parsing failed")
        return 3

    logger.info("%d class(es) parsed", len(classes))
    for c in classes:
        logger.debug("Class %s: %d method(s) from %s", c.name, len(c.methods), c.header or "<unknown>")

    # Emit the gem
    try:
        emitter = MrbgemEmitter(
            ctx, renderer=renderer, registry=registry, parser_name=parser.name, classifier=classifier,
        )
        stats = emitter.generate(classes, enums=enums)
    except Exception:
        logger.exception("Gem generation failed")
        return 4

    for s in stats.shadowed:
        logger.info("Shadowed overload: %s", s)
    if ctx.dry_run:
        logger.info("Dry run: %s left untouched", ctx.output_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
