#!/usr/bin/env python3
"""
Type classification and marshalling strategies for mruby/c bindings.

This module decides, for a raw C++ type spelling, whether a method using it
can be bound mechanically, and if so how a value crosses the VM boundary:

- `classify(raw)` returns a `TypeCategory` (first matching rule wins)
- `is_unsupported_type(raw)` is the single gate the emitters consult
- `marshal_strategy(raw)` bundles the argument-extraction macro, the
  return-setting statement and the native C declaration type

Typical usage:

    from .type_mapping import classify, is_unsupported_type, marshal_strategy

    if any(is_unsupported_type(t) for t in (m.return_type, *m.parameter_types)):
        continue  # filtered
    strategy = marshal_strategy(param.type)
    line = f"{strategy.c_type} {name} = {strategy.arg_expression(1)};"

Design notes:
- `bool` is `int` at the native C boundary (extern declarations, wrapper
  return types) and only becomes a Ruby boolean at the VM boundary.
- Unknown pointers are passed through the VM as integers (opaque handles).
- The naming conventions used to reject object/struct references are data in
  `ClassifierConfig`. Pass `TypeClassifier(config)` to `MrbgemEmitter` (or
  `--type-rules file.json` on the command line) and filtering, marshalling and
  the mrblib docs all follow it. The module-level functions use the defaults.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from .exceptions import BindingGeneratorError
from .naming import by_value_type


# --------------------------
# Helpers
# --------------------------

def _collapse_pointer_spacing(s: str) -> str:
    s = re.sub(r"\s*\*\s*", "*", s)
    s = re.sub(r"\s*&\s*", "&", s)
    while "  " in s:
        s = s.replace("  ", " ")
    return s.strip()


def normalize_type(cpp_type: str) -> str:
    """
    Strip a leading `const` and a trailing `&`; keep pointers.

    'const int&' -> 'int', 'const char *' -> 'char*'
    """
    s = _collapse_pointer_spacing(cpp_type or "")
    s = re.sub(r"^const\s+", "", s)
    s = re.sub(r"&$", "", s)
    return s.strip()


def _reference_base(cpp_type: str) -> str:
    """
    Base identifier of a reference type: 'const M5GFX &' -> 'M5GFX'.
    """
    s = _collapse_pointer_spacing(cpp_type)
    s = re.sub(r"^const\s+", "", s)
    s = s.rstrip("&").strip()
    s = re.sub(r"\s+const$", "", s)
    return s


def _pointer_element(cpp_type: str) -> str:
    """
    Element type of a pointer: 'const uint8_t *' -> 'uint8_t'.
    """
    s = _collapse_pointer_spacing(cpp_type)
    s = s.rstrip("*").strip()
    tokens = [tok for tok in s.split() if tok not in ("const", "volatile")]
    return " ".join(tokens).rstrip("*")


INTEGER_TYPES: FrozenSet[str] = frozenset({
    "char",
    "signed char",
    "unsigned char",
    "short",
    "unsigned short",
    "int",
    "unsigned",
    "unsigned int",
    "long",
    "unsigned long",
    "long long",
    "unsigned long long",
    "int8_t",
    "int16_t",
    "int32_t",
    "int64_t",
    "uint8_t",
    "uint16_t",
    "uint32_t",
    "uint64_t",
    "size_t",
    "intptr_t",
    "uintptr_t",
})

FLOAT_TYPES: FrozenSet[str] = frozenset({"float", "double"})

CSTRING_TYPES: FrozenSet[str] = frozenset({"char*", "const char*"})

# Element types whose pointers are arrays or output parameters, not strings/handles.
_NUMERIC_ELEMENT_TYPES: FrozenSet[str] = (INTEGER_TYPES - {"char"}) | FLOAT_TYPES | {"bool"}


# --------------------------
# Classification model
# --------------------------

class TypeCategory(Enum):
    VOID = auto()
    PRIMITIVE_INT = auto()
    PRIMITIVE_FLOAT = auto()
    PRIMITIVE_BOOL = auto()
    CSTRING = auto()
    UNSUPPORTED_OBJECT_REF = auto()
    UNSUPPORTED_STRUCT_REF = auto()
    UNSUPPORTED_FUNCTION_POINTER = auto()
    UNSUPPORTED_TEMPLATE = auto()
    UNSUPPORTED_RVALUE_REF = auto()
    UNSUPPORTED_POINTER_ARRAY = auto()
    UNSUPPORTED_MALFORMED = auto()
    OPAQUE_POINTER = auto()

    @property
    def is_unsupported(self) -> bool:
        return self.name.startswith("UNSUPPORTED_")


_UNSUPPORTED_REASONS = {
    TypeCategory.UNSUPPORTED_OBJECT_REF: "object reference",
    TypeCategory.UNSUPPORTED_STRUCT_REF: "struct reference",
    TypeCategory.UNSUPPORTED_FUNCTION_POINTER: "function pointer",
    TypeCategory.UNSUPPORTED_TEMPLATE: "template type",
    TypeCategory.UNSUPPORTED_RVALUE_REF: "rvalue reference",
    TypeCategory.UNSUPPORTED_POINTER_ARRAY: "pointer to numeric array/output parameter",
    TypeCategory.UNSUPPORTED_MALFORMED: "malformed type (parser artifact)",
}

_RUBY_TYPE_NAMES = {
    TypeCategory.VOID: "nil",
    TypeCategory.PRIMITIVE_INT: "Integer",
    TypeCategory.PRIMITIVE_FLOAT: "Float",
    TypeCategory.PRIMITIVE_BOOL: "Boolean",
    TypeCategory.CSTRING: "String",
    TypeCategory.OPAQUE_POINTER: "Integer",
}


@dataclass(frozen=True)
class MarshalStrategy:
    """
    How one value crosses the mruby/c boundary.

    Placeholders:
      - `arg_template` receives "{index}" (1-based VM argument index)
      - `return_template` receives "{expr}" (the native result expression)
    """
    category: TypeCategory
    c_type: str
    arg_macro: str
    return_macro: str
    arg_template: str
    return_template: str

    def arg_expression(self, index: int) -> str:
        return self.arg_template.format(index=index)

    def return_statement(self, expr: str = "") -> str:
        return self.return_template.format(expr=expr)


@dataclass(frozen=True)
class ClassifierConfig:
    """
    Vendor naming conventions used by the reference rules.
    """
    # Reference bases matching any of these are vendor objects (M5GFX&, LED_Class&)
    object_ref_patterns: Tuple[str, ...] = (r"^[A-Z]", r"_Class$", r"_Base$")
    # Reference bases matching any of these are POD structs (rtc_time_t&)
    struct_ref_patterns: Tuple[str, ...] = (r"_t$",)
    known_struct_names: FrozenSet[str] = field(default_factory=lambda: frozenset({
        "tm",
        "timeval",
        "timespec",
        "config",
        "rgb_color",
    }))

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> ClassifierConfig:
        """
        Load conventions from a JSON object; omitted keys keep their defaults:

            {
              "object_ref_patterns": ["^Adafruit_", "_Class$"],
              "struct_ref_patterns": ["_t$"],
              "known_struct_names": ["tm", "sensors_event"]
            }
        """
        p = Path(path)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise BindingGeneratorError(f"Type rules file does not exist: {p}", {"path": str(p)}) from e
        except json.JSONDecodeError as e:
            raise BindingGeneratorError(f"Invalid type rules file {p}: {e}", {"path": str(p)}) from e
        if not isinstance(data, dict):
            raise BindingGeneratorError(f"Type rules file {p} must contain a JSON object", {"path": str(p)})

        unknown = sorted(set(data) - {"object_ref_patterns", "struct_ref_patterns", "known_struct_names"})
        if unknown:
            raise BindingGeneratorError(f"Unknown key(s) {', '.join(unknown)} in {p}", {"path": str(p)})
        values: Dict[str, List[str]] = {}
        for key, value in data.items():
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise BindingGeneratorError(f"'{key}' in {p} must be a list of strings", {"path": str(p), "key": key})
            values[key] = value
        for pattern in values.get("object_ref_patterns", []) + values.get("struct_ref_patterns", []):
            try:
                re.compile(pattern)
            except re.error as e:
                raise BindingGeneratorError(f"Bad pattern '{pattern}' in {p}: {e}", {"path": str(p)}) from e

        defaults = cls()
        return cls(
            object_ref_patterns=tuple(values.get("object_ref_patterns", defaults.object_ref_patterns)),
            struct_ref_patterns=tuple(values.get("struct_ref_patterns", defaults.struct_ref_patterns)),
            known_struct_names=frozenset(values.get("known_struct_names", defaults.known_struct_names)),
        )


class TypeClassifier:
    """
    Classifies raw type spellings. Instances are stateless apart from config.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None) -> None:
        self.config = config or ClassifierConfig()
        self._object_res = [re.compile(p) for p in self.config.object_ref_patterns]
        self._struct_res = [re.compile(p) for p in self.config.struct_ref_patterns]

    # ---- Public API ----

    def classify(self, cpp_type: str) -> TypeCategory:
        raw = (cpp_type or "").strip()

        if "." in raw or "->" in raw:
            return TypeCategory.UNSUPPORTED_MALFORMED
        if "(*" in raw.replace(" ", ""):
            return TypeCategory.UNSUPPORTED_FUNCTION_POINTER
        if raw.endswith("&&"):
            return TypeCategory.UNSUPPORTED_RVALUE_REF
        if "<" in raw and ">" in raw:
            return TypeCategory.UNSUPPORTED_TEMPLATE

        if raw.endswith("&"):
            base = _reference_base(raw)
            if any(r.search(base) for r in self._object_res):
                return TypeCategory.UNSUPPORTED_OBJECT_REF
            if base in self.config.known_struct_names or any(r.search(base) for r in self._struct_res):
                return TypeCategory.UNSUPPORTED_STRUCT_REF

        if raw.endswith("*") and _pointer_element(raw) in _NUMERIC_ELEMENT_TYPES:
            return TypeCategory.UNSUPPORTED_POINTER_ARRAY

        normalized = normalize_type(raw)
        if normalized == "void":
            return TypeCategory.VOID
        if normalized == "bool":
            return TypeCategory.PRIMITIVE_BOOL
        if normalized in FLOAT_TYPES:
            return TypeCategory.PRIMITIVE_FLOAT
        if normalized in CSTRING_TYPES:
            return TypeCategory.CSTRING
        if normalized in INTEGER_TYPES:
            return TypeCategory.PRIMITIVE_INT
        if normalized.endswith("*"):
            return TypeCategory.OPAQUE_POINTER
        # Enums, typedefs and anything else passed by value travel as integers.
        return TypeCategory.PRIMITIVE_INT

    def is_unsupported_type(self, cpp_type: str) -> bool:
        return self.classify(cpp_type).is_unsupported

    def unsupported_reason(self, cpp_type: str) -> Optional[str]:
        return _UNSUPPORTED_REASONS.get(self.classify(cpp_type))

    # ---- Marshalling ----

    def arg_macro(self, cpp_type: str) -> str:
        """
        mruby/c GET_*_ARG macro used to pull a parameter off the VM stack.
        """
        category = self.classify(cpp_type)
        if category == TypeCategory.PRIMITIVE_FLOAT:
            return "GET_FLOAT_ARG"
        if category == TypeCategory.CSTRING:
            return "GET_STRING_ARG"
        # bool travels as int; opaque pointers as integers
        return "GET_INT_ARG"

    def return_macro(self, cpp_type: str) -> str:
        """
        mruby/c SET_*_RETURN macro used to hand a native result back to the VM.
        """
        category = self.classify(cpp_type)
        if category == TypeCategory.VOID:
            return "SET_NIL_RETURN"
        if category == TypeCategory.PRIMITIVE_BOOL:
            return "SET_BOOL_RETURN"
        if category == TypeCategory.PRIMITIVE_FLOAT:
            return "SET_FLOAT_RETURN"
        if category == TypeCategory.CSTRING:
            return "SET_RETURN"
        return "SET_INT_RETURN"

    def c_type_for(self, cpp_type: str) -> str:
        """
        Native C type for a variable holding a value of `cpp_type` in the bindings source.
        """
        category = self.classify(cpp_type)
        if category == TypeCategory.PRIMITIVE_BOOL:
            return "int"
        if category == TypeCategory.CSTRING:
            return "const char*"
        return normalize_type(cpp_type)

    def native_return_type(self, cpp_type: str) -> str:
        """
        Return type used on both sides of the extern "C" boundary: `bool` becomes
        `int` and a returned reference becomes a copy.
        """
        if self.classify(cpp_type) == TypeCategory.PRIMITIVE_BOOL:
            return "int"
        return by_value_type(cpp_type)

    def marshal_strategy(self, cpp_type: str) -> MarshalStrategy:
        category = self.classify(cpp_type)
        if category.is_unsupported:
            raise ValueError(f"No marshalling strategy for unsupported type '{cpp_type}'")

        c_type = self.c_type_for(cpp_type)
        get_macro = self.arg_macro(cpp_type)
        set_macro = self.return_macro(cpp_type)

        if category == TypeCategory.CSTRING:
            arg_template = f"(const char*){get_macro}({{index}})"
            return_template = "SET_RETURN(mrbc_string_new_cstr(vm, {expr}));"
        elif category == TypeCategory.OPAQUE_POINTER:
            arg_template = f"({c_type})(intptr_t){get_macro}({{index}})"
            return_template = f"{set_macro}((intptr_t){{expr}});"
        elif category == TypeCategory.VOID:
            arg_template = ""
            return_template = f"{set_macro}();"
        else:
            arg_template = f"{get_macro}({{index}})"
            return_template = f"{set_macro}({{expr}});"

        return MarshalStrategy(
            category=category,
            c_type=c_type,
            arg_macro=get_macro,
            return_macro=set_macro,
            arg_template=arg_template,
            return_template=return_template,
        )

    def ruby_type_name(self, cpp_type: str) -> str:
        """
        Ruby-facing type name, used in the generated mrblib documentation.
        """
        return _RUBY_TYPE_NAMES.get(self.classify(cpp_type), "Object")


# --------------------------
# Default classifier
# --------------------------

_default_classifier = TypeClassifier()


def classify(cpp_type: str) -> TypeCategory:
    return _default_classifier.classify(cpp_type)


def is_unsupported_type(cpp_type: str) -> bool:
    return _default_classifier.is_unsupported_type(cpp_type)


def unsupported_reason(cpp_type: str) -> Optional[str]:
    return _default_classifier.unsupported_reason(cpp_type)


def arg_macro(cpp_type: str) -> str:
    return _default_classifier.arg_macro(cpp_type)


def return_macro(cpp_type: str) -> str:
    return _default_classifier.return_macro(cpp_type)


def c_type_for(cpp_type: str) -> str:
    return _default_classifier.c_type_for(cpp_type)


def native_return_type(cpp_type: str) -> str:
    return _default_classifier.native_return_type(cpp_type)


def marshal_strategy(cpp_type: str) -> MarshalStrategy:
    return _default_classifier.marshal_strategy(cpp_type)


def ruby_type_name(cpp_type: str) -> str:
    return _default_classifier.ruby_type_name(cpp_type)


__all__ = [
    "TypeCategory",
    "ClassifierConfig",
    "TypeClassifier",
    "MarshalStrategy",
    "normalize_type",
    "classify",
    "is_unsupported_type",
    "unsupported_reason",
    "arg_macro",
    "return_macro",
    "c_type_for",
    "native_return_type",
    "marshal_strategy",
    "ruby_type_name",
]
