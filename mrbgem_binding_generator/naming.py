"""
Naming authority shared by every emitter.

All generated symbol names come from here. The native-bindings source declares
`extern` functions by canonical name and the native-wrapper source defines
them; both files call `canonical_name` with the same inputs, so they agree
byte for byte without sharing any state.

Canonical names encode the parameter types to fake C++ overloading in C:

    m5unified_led_class_begin_void
    m5unified_led_class_setbrightness_uint8_t
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .models import ClassInfo, MethodInfo

DEFAULT_VENDOR_PREFIX = "m5unified"
DEFAULT_VM_PREFIX = "mrbc_m5"

_INVALID_PARAM_NAME_RE = re.compile(r"[.\->\s\[\]()]")


def sanitize_parameter_name(name: Optional[str], index: int) -> str:
    """
    Return `name` if it is a usable identifier, else `param_{index}`.

    The fallback depends on the position only, so independent emitters pick
    the same name for the same parameter.
    """
    if not name or _INVALID_PARAM_NAME_RE.search(name):
        return f"param_{index}"
    return name


def normalize_type_for_naming(cpp_type: str) -> str:
    """
    Turn a raw type spelling into an identifier fragment.

    'const uint8_t*' -> 'uint8_t', 'std::vector<int>' -> 'std_vector_int_'
    """
    s = cpp_type.strip()
    s = re.sub(r"^const\s+", "", s)
    s = re.sub(r"[&*\s]+$", "", s)
    s = re.sub(r"\s+", "", s)
    s = re.sub(r"::|<|>|,", "_", s)
    s = re.sub(r"[^a-zA-Z0-9_]", "", s)
    return s.lower()


def canonical_name(class_name: str, method: MethodInfo, prefix: str = DEFAULT_VENDOR_PREFIX) -> str:
    """
    `{prefix}_{class}_{method}_{signature}`; zero-parameter methods end in `_void`.
    """
    base = f"{prefix}_{class_name.lower()}_{method.name.lower()}"
    if not method.parameters:
        return f"{base}_void"
    signature = "_".join(normalize_type_for_naming(p.type) for p in method.parameters)
    return f"{base}_{signature}"


def sanitized_parameter_names(method: MethodInfo) -> List[str]:
    return [sanitize_parameter_name(p.name, i) for i, p in enumerate(method.parameters)]


def by_value_type(cpp_type: str) -> str:
    """
    Drop a trailing lvalue `&`: 'const int &' -> 'const int'.

    References have no C spelling, so both sides of the extern "C" boundary
    pass such values by copy. The vendor call still binds the copy to its
    reference parameter.
    """
    t = (cpp_type or "").strip()
    if t.endswith("&") and not t.endswith("&&"):
        t = t[:-1].rstrip()
    return t


def parameter_list(method: MethodInfo) -> str:
    if not method.parameters:
        return "void"
    names = sanitized_parameter_names(method)
    return ", ".join(f"{p.type} {n}" for p, n in zip(method.parameters, names))


def extern_parameter_list(method: MethodInfo) -> str:
    """
    `parameter_list` with references passed by value, valid in C and C++.
    """
    if not method.parameters:
        return "void"
    names = sanitized_parameter_names(method)
    return ", ".join(f"{by_value_type(p.type)} {n}" for p, n in zip(method.parameters, names))


def call_argument_list(method: MethodInfo) -> str:
    return ", ".join(sanitized_parameter_names(method))


def vm_wrapper_name(method: MethodInfo, vm_prefix: str = DEFAULT_VM_PREFIX, class_name: Optional[str] = None) -> str:
    """
    Name of the static VM-callable function. Arity keeps same-named overloads apart.
    """
    if class_name:
        return f"{vm_prefix}_{class_name.lower()}_{method.name.lower()}_{method.arity}"
    return f"{vm_prefix}_{method.name.lower()}_{method.arity}"


# --------------------------
# VM registration planning
# --------------------------

@dataclass(frozen=True)
class VmRegistration:
    class_name: str
    method: MethodInfo
    symbol: str

    @property
    def label(self) -> str:
        return f"{self.class_name}::{self.method.name}/{self.method.arity}"


def plan_vm_registrations(
    classes: Iterable[ClassInfo],
    vm_prefix: str = DEFAULT_VM_PREFIX,
) -> Tuple[List[VmRegistration], List[VmRegistration]]:
    """
    Decide the wrapper symbol of every method reachable from the VM.

    Returns `(registrations, shadowed)`:
    - The VM dispatches by name, so among overloads of one class sharing a
      name and arity only the last declared is registered; the others are
      returned as shadowed.
    - When methods of different classes would produce the same unqualified
      symbol, every claimant gets the class-qualified symbol instead.
    """
    kept: Dict[Tuple[str, str, int], Tuple[str, MethodInfo]] = {}
    shadowed_methods: List[Tuple[str, MethodInfo]] = []
    for ci in classes:
        for m in ci.methods:
            key = (ci.name, m.name, m.arity)
            previous = kept.pop(key, None)
            if previous is not None:
                shadowed_methods.append(previous)
            kept[key] = (ci.name, m)

    claimants: Dict[str, set] = {}
    for class_name, m in kept.values():
        claimants.setdefault(vm_wrapper_name(m, vm_prefix), set()).add(class_name)

    def symbol_for(class_name: str, m: MethodInfo) -> str:
        base = vm_wrapper_name(m, vm_prefix)
        if len(claimants.get(base, ())) > 1:
            return vm_wrapper_name(m, vm_prefix, class_name=class_name)
        return base

    registrations = [VmRegistration(c, m, symbol_for(c, m)) for c, m in kept.values()]
    shadowed = [VmRegistration(c, m, symbol_for(c, m)) for c, m in shadowed_methods]
    return registrations, shadowed


__all__ = [
    "DEFAULT_VENDOR_PREFIX",
    "DEFAULT_VM_PREFIX",
    "sanitize_parameter_name",
    "normalize_type_for_naming",
    "canonical_name",
    "sanitized_parameter_names",
    "by_value_type",
    "parameter_list",
    "extern_parameter_list",
    "call_argument_list",
    "vm_wrapper_name",
    "VmRegistration",
    "plan_vm_registrations",
]
