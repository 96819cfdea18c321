#!/usr/bin/env python3
"""
Data models for the mrbgem binding generator.

This module provides small, serializable data structures to describe:
- C++ classes, methods and parameters as extracted from headers
- Enums discovered alongside the classes
- Generator configuration (vendor prefix, VM prefix, gem metadata)
- Generation context (paths, flags) and the statistics of a run

The models are consumed by:
- The parsing layer (both the libclang and the regex implementations)
- The type classifier and naming helpers
- The emitters that render the mrbgem artifact set

Type spellings are kept raw (exactly as the parser saw them). Normalization
is the job of `type_mapping` and `naming`, never of the models.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple


# --------------------------
# Parsed declarations
# --------------------------

@dataclass(frozen=True)
class ParameterInfo:
    type: str
    name: Optional[str] = None

    def to_dict(self) -> Dict:
        return {"type": self.type, "name": self.name}


@dataclass(frozen=True)
class MethodInfo:
    """
    One public method as parsed. Each overload is its own MethodInfo.
    """
    name: str
    return_type: str
    parameters: Tuple[ParameterInfo, ...] = ()
    is_static: bool = False
    is_const: bool = False
    is_virtual: bool = False

    @property
    def arity(self) -> int:
        return len(self.parameters)

    @property
    def parameter_types(self) -> Tuple[str, ...]:
        return tuple(p.type for p in self.parameters)

    @property
    def cpp_signature(self) -> str:
        """
        Human-friendly C++ signature string, used for diagnostics.
        """
        params = ", ".join(p.type for p in self.parameters)
        return f"{self.return_type} {self.name}({params})"

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "return_type": self.return_type,
            "parameters": [p.to_dict() for p in self.parameters],
            "is_static": self.is_static,
            "is_const": self.is_const,
            "is_virtual": self.is_virtual,
            "cpp_signature": self.cpp_signature,
        }


def make_method(
    name: str,
    return_type: str,
    parameters: Sequence[Tuple[str, Optional[str]]] = (),
    **flags: bool,
) -> MethodInfo:
    """
    Convenience constructor: `make_method("begin", "void", [("int", "a")])`.
    """
    return MethodInfo(
        name=name,
        return_type=return_type,
        parameters=tuple(ParameterInfo(type=t, name=n) for t, n in parameters),
        **flags,
    )


# --------------------------
# Enum model
# --------------------------

@dataclass(frozen=True)
class EnumValue:
    name: str
    value: Optional[str] = None


@dataclass(frozen=True)
class EnumInfo:
    name: str
    values: Tuple[EnumValue, ...] = ()
    is_scoped: bool = False

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "is_scoped": self.is_scoped,
            "values": [{"name": v.name, "value": v.value} for v in self.values],
        }


# --------------------------
# Classes
# --------------------------

@dataclass(frozen=True)
class ClassInfo:
    name: str
    methods: Tuple[MethodInfo, ...] = ()
    enums: Tuple[EnumInfo, ...] = ()
    header: str = ""

    def with_methods(self, methods: Sequence[MethodInfo]) -> ClassInfo:
        """
        Return a copy holding only `methods`. The filter step prunes through this.
        """
        return replace(self, methods=tuple(methods))

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "header": self.header,
            "methods": [m.to_dict() for m in self.methods],
            "enums": [e.to_dict() for e in self.enums],
        }


# --------------------------
# Generator configuration
# --------------------------

@dataclass(frozen=True)
class GeneratorConfig:
    """
    Naming and packaging knobs for one vendor library.

    Defaults target M5Unified on PicoRuby (mruby/c) for the ESP32 port.
    """
    vendor_prefix: str = "m5unified"
    vm_prefix: str = "mrbc_m5"
    gem_name: str = "picoruby-m5unified"
    vendor_header: str = "M5Unified.h"
    # Expression used to reach an instance of a class, e.g. "M5.{class_name}"
    api_accessor: str = "M5.{class_name}"
    idf_component: str = "m5unified"
    port: str = "esp32"
    license: str = "MIT"
    author: str = "mrbgem-binding-generator"
    summary: str = "M5Unified bindings for PicoRuby"

    @property
    def gem_c_name(self) -> str:
        return self.gem_name.replace("-", "_")

    @property
    def gem_init_function(self) -> str:
        return f"mrbc_mrbgem_{self.gem_c_name}_gem_init"

    @property
    def bindings_filename(self) -> str:
        return f"{self.vendor_prefix}.c"

    @property
    def wrapper_filename(self) -> str:
        return f"{self.vendor_prefix}_wrapper.cpp"

    @property
    def mrblib_filename(self) -> str:
        return f"{self.vendor_prefix}.rb"

    def api_object(self, class_name: str) -> str:
        return self.api_accessor.format(class_name=class_name)

    def to_dict(self) -> Dict:
        return {
            "vendor_prefix": self.vendor_prefix,
            "vm_prefix": self.vm_prefix,
            "gem_name": self.gem_name,
            "vendor_header": self.vendor_header,
            "api_accessor": self.api_accessor,
            "idf_component": self.idf_component,
            "port": self.port,
        }


# --------------------------
# Run settings
# --------------------------

@dataclass
class GenerationContext:
    """
    Everything one invocation needs besides the parsed classes.

    output_dir and templates_dir are resolved to absolute paths by the CLI.
    """
    output_dir: Path
    config: GeneratorConfig = field(default_factory=GeneratorConfig)
    templates_dir: Optional[Path] = None
    emit_manifest: bool = True
    dry_run: bool = False

    @property
    def bindings_dir(self) -> Path:
        return self.output_dir / "src"

    @property
    def mrblib_dir(self) -> Path:
        return self.output_dir / "mrblib"

    @property
    def port_dir(self) -> Path:
        return self.output_dir / "ports" / self.config.port

    def to_dict(self) -> Dict:
        return {
            "output_dir": str(self.output_dir),
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
            "config": self.config.to_dict(),
            "dry_run": self.dry_run,
        }


# --------------------------
# Run statistics
# --------------------------

@dataclass
class FilteredMethod:
    class_name: str
    method: MethodInfo
    reason: str

    def to_dict(self) -> Dict:
        return {
            "class": self.class_name,
            "method": self.method.cpp_signature,
            "reason": self.reason,
        }


@dataclass
class GenerationStats:
    filtered_count: int = 0
    generated_count: int = 0
    skipped_count: int = 0
    overridden_count: int = 0
    filtered: List[FilteredMethod] = field(default_factory=list)
    # "Class::method/arity" registrations hidden by a later same-arity overload
    shadowed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "filtered_count": self.filtered_count,
            "generated_count": self.generated_count,
            "skipped_count": self.skipped_count,
            "overridden_count": self.overridden_count,
            "filtered": [f.to_dict() for f in self.filtered],
            "shadowed": list(self.shadowed),
        }


__all__ = [
    "ParameterInfo",
    "MethodInfo",
    "make_method",
    "EnumValue",
    "EnumInfo",
    "ClassInfo",
    "GeneratorConfig",
    "GenerationContext",
    "FilteredMethod",
    "GenerationStats",
]
