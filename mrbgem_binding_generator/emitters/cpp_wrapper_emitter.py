#!/usr/bin/env python3
"""
Emitter for the native-wrapper C++ source (`ports/<port>/<vendor>_wrapper.cpp`).

Every retained method becomes an `extern "C"` function named by
`canonical_name` that forwards to the vendor API object. Override code takes
precedence for the overloads it accepts.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..models import ClassInfo, GeneratorConfig, MethodInfo
from ..naming import call_argument_list, canonical_name, extern_parameter_list
from ..overrides import OverrideRegistry
from ..type_mapping import TypeCategory, TypeClassifier

logger = logging.getLogger(__name__)


class CppWrapperEmitter:
    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        registry: Optional[OverrideRegistry] = None,
        classifier: Optional[TypeClassifier] = None,
    ) -> None:
        self.config = config or GeneratorConfig()
        self.registry = registry or OverrideRegistry()
        self.classifier = classifier or TypeClassifier()

    def render(self, classes: Sequence[ClassInfo]) -> str:
        lines: List[str] = [
            "/**",
            f" * {self.config.vendor_prefix} native wrappers for PicoRuby (mruby/c).",
            " *",
            " * This file is generated by mrbgem-binding-generator. Do not edit.",
            " */",
            "",
            f"#include <{self.config.vendor_header}>",
            "",
            'extern "C" {',
            "",
        ]

        defined = set()
        snippets = set()
        for ci in classes:
            for m in ci.methods:
                code = self.registry.native_wrapper_for(ci.name, m)
                if code is not None:
                    if code in snippets:
                        continue
                    snippets.add(code)
                    lines.append(f"// {ci.name}::{m.cpp_signature} (override)")
                    lines.extend(code.rstrip("\n").split("\n"))
                    lines.append("")
                    continue

                fn = canonical_name(ci.name, m, self.config.vendor_prefix)
                if fn in defined:
                    # e.g. const and non-const overloads with the same parameters
                    logger.debug("Skipping duplicate native wrapper %s for %s::%s", fn, ci.name, m.name)
                    continue
                defined.add(fn)
                lines.extend(self._generic_function(ci.name, m, fn))
                lines.append("")

        lines.append('} // extern "C"')
        lines.append("")
        return "\n".join(lines)

    def _generic_function(self, class_name: str, m: MethodInfo, fn: str) -> List[str]:
        api_call = f"{self.config.api_object(class_name)}.{m.name}({call_argument_list(m)})"
        category = self.classifier.classify(m.return_type)
        if category == TypeCategory.PRIMITIVE_BOOL:
            body = f"  return {api_call} ? 1 : 0;"
        elif category == TypeCategory.VOID:
            body = f"  {api_call};"
        else:
            body = f"  return {api_call};"
        return [
            f"{self.classifier.native_return_type(m.return_type)} {fn}({extern_parameter_list(m)}) {{",
            body,
            "}",
        ]


__all__ = ["CppWrapperEmitter"]
