#!/usr/bin/env python3
"""
Orchestrator that turns parsed classes into a complete mrbgem.

Outputs (relative to the output directory):

- mrbgem.rake
- CMakeLists.txt
- README.md
- manifest.json (optional)
- mrblib/<vendor>.rb
- src/<vendor>.c
- ports/<port>/<vendor>_wrapper.cpp

The C and C++ sources are built line by line by `CBindingEmitter` and
`CppWrapperEmitter`; the descriptors and docs come from Jinja2 templates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..manifest import emit_manifest
from ..models import ClassInfo, EnumInfo, FilteredMethod, GenerationContext, GenerationStats, MethodInfo
from ..overrides import CustomOverride, OverrideRegistry, SkipOverride, default_registry
from ..type_mapping import TypeClassifier
from ..naming import sanitized_parameter_names
from ..utils import TemplateRenderer, ensure_dir, staged_output_dir, write_text
from .c_binding_emitter import CBindingEmitter
from .cpp_wrapper_emitter import CppWrapperEmitter

logger = logging.getLogger(__name__)


# --------------------------
# Configuration
# --------------------------

@dataclass(frozen=True)
class EmitterConfig:
    """
    Template names; override them to use custom ones from the templates directory.
    """
    mrbgem_rake_template: str = "mrbgem.rake.j2"
    cmake_template: str = "CMakeLists.txt.j2"
    readme_template: str = "README.md.j2"
    mrblib_template: str = "mrblib.rb.j2"


# --------------------------
# Filtering
# --------------------------

def method_unsupported_reason(method: MethodInfo, classifier: Optional[TypeClassifier] = None) -> Optional[str]:
    classifier = classifier or TypeClassifier()
    reason = classifier.unsupported_reason(method.return_type)
    if reason:
        return f"return type: {reason}"
    for p in method.parameters:
        reason = classifier.unsupported_reason(p.type)
        if reason:
            return f"parameter '{p.name or '?'}': {reason}"
    return None


def filter_methods(
    classes: Sequence[ClassInfo],
    registry: OverrideRegistry,
    classifier: Optional[TypeClassifier] = None,
) -> Tuple[List[ClassInfo], GenerationStats]:
    """
    Keep the methods that can be generated and tally the rest.

    - Skip overrides drop every overload (`skipped_count`).
    - Unsupported methods are dropped (`filtered_count`) unless a custom
      override supplies both the native wrapper and the binding for that
      overload (`overridden_count`).
    - Everything else is kept (`generated_count`).
    Returns new ClassInfo instances; the inputs are not modified.
    """
    classifier = classifier or TypeClassifier()
    stats = GenerationStats()
    retained: List[ClassInfo] = []
    for ci in classes:
        kept: List[MethodInfo] = []
        for m in ci.methods:
            action = registry.action_for(ci.name, m.name)
            if isinstance(action, SkipOverride):
                logger.debug("Skipping %s::%s: %s", ci.name, m.cpp_signature, action.reason)
                stats.skipped_count += 1
                continue

            reason = method_unsupported_reason(m, classifier)
            if reason is None:
                stats.generated_count += 1
                kept.append(m)
                continue

            if isinstance(action, CustomOverride):
                native = action.native_wrapper(m)
                binding = action.binding(m)
                if native is not None and binding is not None:
                    logger.debug("Override binds %s::%s (%s)", ci.name, m.cpp_signature, reason)
                    stats.overridden_count += 1
                    kept.append(m)
                    continue
                if (native is None) != (binding is None):
                    logger.warning(
                        "Override for %s::%s supplies only one of native wrapper and binding; method filtered",
                        ci.name, m.cpp_signature,
                    )

            logger.debug("Filtering %s::%s: %s", ci.name, m.cpp_signature, reason)
            stats.filtered_count += 1
            stats.filtered.append(FilteredMethod(class_name=ci.name, method=m, reason=reason))
        retained.append(ci.with_methods(kept))
    return retained, stats


# --------------------------
# Template context
# --------------------------

def _method_context(m: MethodInfo) -> Dict[str, Any]:
    return {
        "name": m.name,
        "params": [
            {"name": n, "type": p.type}
            for p, n in zip(m.parameters, sanitized_parameter_names(m))
        ],
        "return_type": m.return_type,
    }


def build_template_context(
    ctx: GenerationContext,
    classes: Sequence[ClassInfo],
    enums: Sequence[EnumInfo],
    stats: GenerationStats,
) -> Dict[str, Any]:
    cfg = ctx.config
    return {
        "config": cfg,
        "bindings_source": f"src/{cfg.bindings_filename}",
        "wrapper_source": f"ports/{cfg.port}/{cfg.wrapper_filename}",
        "classes": [
            {
                "name": ci.name,
                "methods": [_method_context(m) for m in ci.methods],
                "enums": [e.to_dict() for e in ci.enums],
            }
            for ci in classes
        ],
        "enums": [e.to_dict() for e in enums],
        "stats": stats.to_dict(),
    }


# --------------------------
# Emitter
# --------------------------

class MrbgemEmitter:
    """
    Generate the mrbgem artifact set from parsed class metadata.

    Usage:
        emitter = MrbgemEmitter(ctx, classifier=TypeClassifier(rules))
        stats = emitter.generate(classes)

    The classifier (default M5Unified conventions when omitted) decides
    filtering, marshalling and the Ruby type names in mrblib alike.

    All files are written to a staging directory next to the output directory
    and moved into place only once every artifact rendered, so a failing run
    changes nothing on disk.

    Concurrency: one output directory must not be targeted by two runs at the
    same time. There is no locking; callers have to serialize such runs.
    """

    def __init__(
        self,
        ctx: GenerationContext,
        renderer: Optional[TemplateRenderer] = None,
        registry: Optional[OverrideRegistry] = None,
        config: Optional[EmitterConfig] = None,
        parser_name: Optional[str] = None,
        classifier: Optional[TypeClassifier] = None,
    ) -> None:
        self.ctx = ctx
        self.classifier = classifier or TypeClassifier()
        self.renderer = renderer or TemplateRenderer(ctx.templates_dir)
        self.renderer.env.filters["ruby_type"] = self.classifier.ruby_type_name
        self.registry = registry if registry is not None else default_registry()
        self.config = config or EmitterConfig()
        self.parser_name = parser_name

    # ---- Public API ----

    def generate(
        self,
        classes: Sequence[ClassInfo],
        output_dir: Optional[Union[str, Path]] = None,
        enums: Sequence[EnumInfo] = (),
    ) -> GenerationStats:
        """
        Filter `classes`, then write every artifact. Returns the run's tally.
        """
        if output_dir is not None:
            self.ctx = replace(self.ctx, output_dir=Path(output_dir))

        retained, stats = filter_methods(classes, self.registry, self.classifier)
        nested = {e for ci in retained for e in ci.enums}
        top_level = [e for e in enums if e not in nested]

        with staged_output_dir(self.ctx.output_dir, dry_run=self.ctx.dry_run) as root:
            staged = replace(self.ctx, output_dir=Path(root))
            try:
                self._scaffold(staged)
                self._emit_sources(staged, retained, stats)
                self._emit_templates(staged, retained, top_level, stats)
                if self.ctx.emit_manifest:
                    emit_manifest(self.ctx, retained, stats, parser_name=self.parser_name, root=staged.output_dir)
            except Exception:
                logger.exception("Failed to generate mrbgem under %s; nothing was written", self.ctx.output_dir)
                raise

        logger.info(
            "Generated %d method(s), filtered %d, skipped %d, overridden %d under: %s",
            stats.generated_count, stats.filtered_count, stats.skipped_count,
            stats.overridden_count, self.ctx.output_dir,
        )
        return stats

    # ---- Internals ----

    def _scaffold(self, ctx: GenerationContext) -> None:
        if ctx.dry_run:
            return
        for d in (ctx.output_dir, ctx.mrblib_dir, ctx.bindings_dir, ctx.port_dir):
            ensure_dir(d)

    def _emit_sources(self, ctx: GenerationContext, classes: Sequence[ClassInfo], stats: GenerationStats) -> None:
        cfg = ctx.config
        c_emitter = CBindingEmitter(cfg, self.registry, self.classifier)
        c_text = c_emitter.render(classes)
        stats.shadowed = [s.label for s in c_emitter.shadowed]
        write_text(ctx.bindings_dir / cfg.bindings_filename, c_text, dry_run=ctx.dry_run)

        cpp_text = CppWrapperEmitter(cfg, self.registry, self.classifier).render(classes)
        write_text(ctx.port_dir / cfg.wrapper_filename, cpp_text, dry_run=ctx.dry_run)

    def _emit_templates(
        self,
        ctx: GenerationContext,
        classes: Sequence[ClassInfo],
        enums: Sequence[EnumInfo],
        stats: GenerationStats,
    ) -> None:
        context = build_template_context(ctx, classes, enums, stats)
        outputs = (
            (self.config.mrbgem_rake_template, ctx.output_dir / "mrbgem.rake"),
            (self.config.cmake_template, ctx.output_dir / "CMakeLists.txt"),
            (self.config.readme_template, ctx.output_dir / "README.md"),
            (self.config.mrblib_template, ctx.mrblib_dir / ctx.config.mrblib_filename),
        )
        for template, path in outputs:
            write_text(path, self.renderer.render(template, context), dry_run=ctx.dry_run)


__all__ = [
    "EmitterConfig",
    "MrbgemEmitter",
    "filter_methods",
    "method_unsupported_reason",
    "build_template_context",
]
