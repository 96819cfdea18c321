#!/usr/bin/env python3
"""
Emitter for the native-bindings C source (`src/<vendor>.c`).

The file has four sections:

- class handles: `static mrbc_class *c_<Class>;`
- extern declarations of the canonical native functions
- VM-callable wrappers that unpack arguments, call the native function and
  set the return value
- the gem init function registering classes and methods with the VM

mruby/c dispatches by method name only. Wrapper symbols carry the arity, but
when two overloads of one class share a name and an arity only the later one
is registered; `plan_vm_registrations` decides which, and this emitter
reports the hidden ones through `shadowed`.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence

from ..exceptions import GenerationError
from ..models import ClassInfo, GeneratorConfig, MethodInfo
from ..naming import (
    VmRegistration,
    canonical_name,
    extern_parameter_list,
    plan_vm_registrations,
    sanitized_parameter_names,
    vm_wrapper_name,
)
from ..overrides import OverrideRegistry
from ..type_mapping import TypeCategory, TypeClassifier

logger = logging.getLogger(__name__)

# Names already taken inside a VM wrapper body
_RESERVED_LOCALS = frozenset(("vm", "v", "argc", "result"))


def _local_name(name: str) -> str:
    return f"{name}_" if name in _RESERVED_LOCALS else name


def retarget_binding(code: str, method: MethodInfo, symbol: str) -> str:
    """
    Point override binding code at the planned wrapper symbol.

    Override snippets define `vm_wrapper_name(method)` with the default VM
    prefix; a different prefix or a class-qualified plan renames it here.
    """
    default = vm_wrapper_name(method)
    if default == symbol:
        return code
    return re.sub(rf"\b{re.escape(default)}\(", f"{symbol}(", code)


class CBindingEmitter:
    """
    Usage:
        emitter = CBindingEmitter(config, registry)
        text = emitter.render(classes)
        emitter.shadowed  # registrations hidden by a later same-arity overload

    Parameters taken by lvalue reference are declared by value, since C has no
    references; the port wrapper uses the same spelling.
    """

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        registry: Optional[OverrideRegistry] = None,
        classifier: Optional[TypeClassifier] = None,
    ) -> None:
        self.config = config or GeneratorConfig()
        self.registry = registry or OverrideRegistry()
        self.classifier = classifier or TypeClassifier()
        self.shadowed: List[VmRegistration] = []

    # ---- Public API ----

    def render(self, classes: Sequence[ClassInfo]) -> str:
        registrations, self.shadowed = plan_vm_registrations(classes, self.config.vm_prefix)
        for s in self.shadowed:
            logger.warning(
                "%s is not reachable from Ruby: a later overload with the same arity is registered as '%s'",
                s.label, s.method.name,
            )

        overrides: Dict[str, str] = {}
        for reg in registrations:
            code = self.registry.binding_for(reg.class_name, reg.method)
            if code is None:
                continue
            code = retarget_binding(code, reg.method, reg.symbol)
            if not re.search(rf"\b{re.escape(reg.symbol)}\(", code):
                # The registration line would name a function nobody defines.
                raise GenerationError(
                    f"Override binding for {reg.label} does not define {reg.symbol}",
                    {"method": reg.label, "symbol": reg.symbol},
                )
            overrides[reg.label] = code

        lines: List[str] = []
        lines.extend(self._preamble())
        lines.extend(self._class_handles(classes))
        lines.extend(self._extern_declarations(classes))
        lines.extend(self._wrappers(registrations, overrides))
        lines.extend(self._gem_init(classes, registrations))
        return "\n".join(lines)

    # ---- Sections ----

    def _preamble(self) -> List[str]:
        return [
            "/**",
            f" * {self.config.vendor_prefix} C bindings for PicoRuby (mruby/c).",
            " *",
            " * This file is generated by mrbgem-binding-generator. Do not edit.",
            " */",
            "",
            "#include <stdbool.h>",
            "#include <stddef.h>",
            "#include <stdint.h>",
            "#include <mrubyc.h>",
            "",
        ]

    def _class_handles(self, classes: Sequence[ClassInfo]) -> List[str]:
        lines = ["/* Class handles */"]
        lines.extend(f"static mrbc_class *c_{ci.name};" for ci in classes)
        lines.append("")
        return lines

    def _extern_declarations(self, classes: Sequence[ClassInfo]) -> List[str]:
        """
        One declaration per retained method, shadowed overloads included.
        Methods bound through override code declare their own externs.
        """
        lines = ["/* Native functions (defined in the port wrapper) */"]
        seen = set()
        for ci in classes:
            for m in ci.methods:
                if self.registry.binding_for(ci.name, m) is not None:
                    continue
                fn = canonical_name(ci.name, m, self.config.vendor_prefix)
                if fn in seen:
                    continue
                seen.add(fn)
                lines.append(f"extern {self.classifier.native_return_type(m.return_type)} {fn}({extern_parameter_list(m)});")
        lines.append("")
        return lines

    def _wrappers(self, registrations: Sequence[VmRegistration], overrides: Dict[str, str]) -> List[str]:
        lines = ["/* VM method wrappers */"]
        emitted_snippets = set()
        for reg in registrations:
            code = overrides.get(reg.label)
            if code is not None:
                if code in emitted_snippets:
                    continue
                emitted_snippets.add(code)
                lines.append(f"/* {reg.label} (override) */")
                lines.extend(code.rstrip("\n").split("\n"))
            else:
                lines.extend(self._generic_wrapper(reg))
            lines.append("")
        return lines

    def _generic_wrapper(self, reg: VmRegistration) -> List[str]:
        m = reg.method
        fn = canonical_name(reg.class_name, m, self.config.vendor_prefix)
        lines = [f"static void {reg.symbol}(mrbc_vm *vm, mrbc_value *v, int argc) {{"]

        args: List[str] = []
        for index, (p, name) in enumerate(zip(m.parameters, sanitized_parameter_names(m)), start=1):
            strategy = self.classifier.marshal_strategy(p.type)
            local = _local_name(name)
            lines.append(f"  {strategy.c_type} {local} = {strategy.arg_expression(index)};")
            args.append(local)

        call = f"{fn}({', '.join(args)})"
        ret = self.classifier.marshal_strategy(m.return_type)
        if ret.category == TypeCategory.VOID:
            lines.append(f"  {call};")
            lines.append(f"  {ret.return_statement()}")
        else:
            # bool arrives as 0/1 and becomes true/false here
            lines.append(f"  {ret.c_type} result = {call};")
            lines.append(f"  {ret.return_statement('result')}")
        lines.append("}")
        return lines

    def _gem_init(self, classes: Sequence[ClassInfo], registrations: Sequence[VmRegistration]) -> List[str]:
        by_class: Dict[str, List[VmRegistration]] = {}
        for reg in registrations:
            by_class.setdefault(reg.class_name, []).append(reg)

        lines = [f"void {self.config.gem_init_function}(mrbc_vm *vm) {{"]
        for ci in classes:
            lines.append(f'  c_{ci.name} = mrbc_define_class(vm, "{ci.name}", mrbc_class_object);')
            for reg in by_class.get(ci.name, ()):
                lines.append(f'  mrbc_define_method(vm, c_{ci.name}, "{reg.method.name}", {reg.symbol});')
        lines.append("}")
        lines.append("")
        return lines


__all__ = [
    "CBindingEmitter",
    "retarget_binding",
]
