#!/usr/bin/env python3
"""
Manual overrides for methods the generic rules cannot bind.

Most vendor methods go through the type classifier and naming authority
untouched. The rest need vendor knowledge: a struct passed by reference that
can be flattened into integers, output pointers that become a Ruby array, or a
family of ambiguous overloads that is better left out entirely.

Entries are keyed by `"{class}::{method}"` lowercased. The key is not
signature-aware: a `CustomOverride` receives the full `MethodInfo` of every
overload and returns `None` for the overloads it does not handle, which then
fall through to generic generation. A `SkipOverride` removes every overload.

Usage:

    registry = default_registry()
    action = registry.action_for("LED_Class", "setAllColor")
    code = registry.native_wrapper_for("LED_Class", method)
"""

from __future__ import annotations

import json
import logging
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Tuple, Union

from .exceptions import BindingGeneratorError
from .models import MethodInfo
from .naming import vm_wrapper_name
from .type_mapping import is_unsupported_type

logger = logging.getLogger(__name__)

CodeGenerator = Callable[[MethodInfo], Optional[str]]


# --------------------------
# Override model
# --------------------------

@dataclass(frozen=True)
class SkipOverride:
    reason: str


@dataclass(frozen=True)
class CustomOverride:
    """
    Hand-written code for the native wrapper and for the VM binding.

    Both callables get the overload being generated and may decline with None.
    Binding code must declare the extern function it calls and define the
    VM wrapper `{vm_prefix}_{method_lower}_{arity}`.
    """
    native_wrapper: CodeGenerator
    binding: CodeGenerator


OverrideAction = Union[SkipOverride, CustomOverride]


def normalize_key(class_name: str, method_name: str) -> str:
    return f"{class_name}::{method_name}".lower()


def _code(text: str) -> str:
    return textwrap.dedent(text).strip("\n") + "\n"


def _for_arity(arity: int, text: Optional[str]) -> CodeGenerator:
    """
    Wrap a literal snippet that only overloads taking `arity` arguments accept.
    """
    def generate(method: MethodInfo) -> Optional[str]:
        if text is None:
            return None
        if method.arity != arity:
            return None
        return _code(text)
    return generate


# --------------------------
# Registry
# --------------------------

class OverrideRegistry:
    """
    Lookup table from normalized class/method keys to override actions.
    """

    def __init__(self, entries: Optional[Dict[str, OverrideAction]] = None) -> None:
        self._entries: Dict[str, OverrideAction] = {}
        for key, action in (entries or {}).items():
            self._entries[key.lower()] = action

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[str, OverrideAction]]:
        return iter(sorted(self._entries.items()))

    # ---- Mutation ----

    def register(self, class_name: str, method_name: str, action: OverrideAction) -> None:
        key = normalize_key(class_name, method_name)
        if key in self._entries:
            logger.debug("Replacing override for %s", key)
        self._entries[key] = action

    def merged(self, other: OverrideRegistry) -> OverrideRegistry:
        """
        New registry with `other`'s entries taking precedence.
        """
        combined = dict(self._entries)
        combined.update(other._entries)
        return OverrideRegistry(combined)

    # ---- Lookup ----

    def has_override(self, class_name: str, method_name: str) -> bool:
        return normalize_key(class_name, method_name) in self._entries

    def action_for(self, class_name: str, method_name: str) -> Optional[OverrideAction]:
        return self._entries.get(normalize_key(class_name, method_name))

    def skip_reason(self, class_name: str, method_name: str) -> Optional[str]:
        action = self.action_for(class_name, method_name)
        return action.reason if isinstance(action, SkipOverride) else None

    def native_wrapper_for(self, class_name: str, method: MethodInfo) -> Optional[str]:
        action = self.action_for(class_name, method.name)
        if not isinstance(action, CustomOverride):
            return None
        return action.native_wrapper(method)

    def binding_for(self, class_name: str, method: MethodInfo) -> Optional[str]:
        action = self.action_for(class_name, method.name)
        if not isinstance(action, CustomOverride):
            return None
        return action.binding(method)

    # ---- Loading ----

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> OverrideRegistry:
        """
        Load entries from a JSON object:

            {
              "log_class::setdisplay": {"action": "skip", "reason": "..."},
              "led_class::setallcolor": {
                "action": "custom", "arity": 1,
                "native_wrapper": "...", "binding": "..."
              }
            }
        """
        p = Path(path)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise BindingGeneratorError(f"Override file does not exist: {p}", {"path": str(p)}) from e
        except json.JSONDecodeError as e:
            raise BindingGeneratorError(f"Invalid override file {p}: {e}", {"path": str(p)}) from e
        if not isinstance(data, dict):
            raise BindingGeneratorError(f"Override file {p} must contain a JSON object", {"path": str(p)})

        entries: Dict[str, OverrideAction] = {}
        for key, spec in data.items():
            if "::" not in key or not isinstance(spec, dict):
                raise BindingGeneratorError(f"Malformed override entry '{key}' in {p}", {"path": str(p), "key": key})
            action = spec.get("action")
            if action == "skip":
                entries[key] = SkipOverride(reason=str(spec.get("reason", "skipped by override file")))
            elif action == "custom":
                # A literal snippet defines one wrapper symbol, so it binds one arity.
                arity = spec.get("arity")
                if isinstance(arity, bool) or not isinstance(arity, int) or arity < 0:
                    raise BindingGeneratorError(
                        f"Custom override '{key}' in {p} needs a non-negative integer 'arity'",
                        {"path": str(p), "key": key},
                    )
                entries[key] = CustomOverride(
                    native_wrapper=_for_arity(arity, spec.get("native_wrapper")),
                    binding=_for_arity(arity, spec.get("binding")),
                )
            else:
                raise BindingGeneratorError(f"Unknown override action '{action}' for '{key}' in {p}", {"path": str(p), "key": key})
        logger.info("Loaded %d override(s) from %s", len(entries), p)
        return cls(entries)


# --------------------------
# M5Unified defaults
# --------------------------

def _array_binding(fn: str, vm_symbol: str, element_type: str, count: int, value_ctor: str, names: Tuple[str, ...]) -> str:
    sets = "".join(
        f"    mrbc_value {name} = {value_ctor.format(value=f'result[{i}]')};\n"
        f"    mrbc_array_set(&array, {i}, &{name});\n"
        for i, name in enumerate(names)
    )
    return (
        f"extern int {fn}({element_type}* result);\n"
        f"static void {vm_symbol}(mrbc_vm *vm, mrbc_value *v, int argc) {{\n"
        f"  {element_type} result[{count}];\n"
        f"  if ({fn}(result)) {{\n"
        f"    mrbc_value array = mrbc_array_new(vm, {count});\n"
        f"{sets}"
        f"    SET_RETURN(array);\n"
        f"  }} else {{\n"
        f"    SET_NIL_RETURN();\n"
        f"  }}\n"
        f"}}\n"
    )


def _xyz_array_override(class_key: str, method: str, api_call: str, names: Tuple[str, str, str]) -> CustomOverride:
    """
    Output-pointer triples such as `getAccel(float*, float*, float*)` returned as a Ruby array.
    """
    fn = f"m5unified_{class_key}_{method.lower()}_array"
    a, b, c = names
    native = (
        f"int {fn}(float* result) {{\n"
        f"  float {a}, {b}, {c};\n"
        f"  bool success = {api_call}(&{a}, &{b}, &{c});\n"
        f"  if (success) {{\n"
        f"    result[0] = {a};\n"
        f"    result[1] = {b};\n"
        f"    result[2] = {c};\n"
        f"    return 1;\n"
        f"  }}\n"
        f"  return 0;\n"
        f"}}\n"
    )

    # Only the output-pointer overload; the array form replaces it.
    def handles(m: MethodInfo) -> bool:
        return m.arity == 3

    return CustomOverride(
        native_wrapper=lambda m: native if handles(m) else None,
        binding=lambda m: _array_binding(
            fn, vm_wrapper_name(m), "float", 3, "mrbc_float_value(vm, {value})", names,
        ) if handles(m) else None,
    )


def _int_array_override(method: str, element_type: str, body: Tuple[str, ...], names: Tuple[str, ...]) -> CustomOverride:
    """
    RTC struct returns flattened into an integer array.
    """
    fn = f"m5unified_rtc_class_{method.lower()}_array"
    count = len(names)
    lines = [f"int {fn}({element_type}* result) {{"]
    lines.extend(f"  {line}" for line in body)
    lines.append(f"  return {count};")
    lines.append("}")
    native = "\n".join(lines) + "\n"
    return CustomOverride(
        native_wrapper=lambda m: native if m.arity == 0 else None,
        binding=lambda m: _array_binding(
            fn, vm_wrapper_name(m), element_type, count, "mrbc_integer_value({value})", names,
        ) if m.arity == 0 else None,
    )


def _m5unified_begin_native(method: MethodInfo) -> Optional[str]:
    if method.parameters:
        # begin(config_t) needs the whole config struct; left to generic rules.
        return None
    return _code("""
        void m5unified_m5unified_begin_void(void) {
          auto cfg = M5.config();
          M5.begin(cfg);
        }
    """)


def _m5unified_begin_binding(method: MethodInfo) -> Optional[str]:
    if method.parameters:
        return None
    return _code(f"""
        extern void m5unified_m5unified_begin_void(void);
        static void {vm_wrapper_name(method)}(mrbc_vm *vm, mrbc_value *v, int argc) {{
          m5unified_m5unified_begin_void();
          SET_NIL_RETURN();
        }}
    """)


def _takes_unsupported_color(method: MethodInfo) -> bool:
    # RGBColor& overloads only; integer overloads bind generically.
    return any(is_unsupported_type(t) for t in method.parameter_types)


def _led_setallcolor_native(method: MethodInfo) -> Optional[str]:
    if method.arity != 1 or not _takes_unsupported_color(method):
        return None
    return _code("""
        void m5unified_led_class_setallcolor_uint32(uint32_t rgb888) {
          M5.Led.setAllColor(rgb888);
        }
    """)


def _led_setallcolor_binding(method: MethodInfo) -> Optional[str]:
    if method.arity != 1 or not _takes_unsupported_color(method):
        return None
    return _code(f"""
        extern void m5unified_led_class_setallcolor_uint32(uint32_t rgb888);
        static void {vm_wrapper_name(method)}(mrbc_vm *vm, mrbc_value *v, int argc) {{
          uint32_t rgb888 = GET_INT_ARG(1);
          m5unified_led_class_setallcolor_uint32(rgb888);
          SET_NIL_RETURN();
        }}
    """)


def _led_setcolor_native(method: MethodInfo) -> Optional[str]:
    if method.arity != 2 or not _takes_unsupported_color(method):
        return None
    return _code("""
        void m5unified_led_class_setcolor_size_t_uint32(size_t index, uint32_t rgb888) {
          M5.Led.setColor(index, rgb888);
        }
    """)


def _led_setcolor_binding(method: MethodInfo) -> Optional[str]:
    if method.arity != 2 or not _takes_unsupported_color(method):
        return None
    return _code(f"""
        extern void m5unified_led_class_setcolor_size_t_uint32(size_t index, uint32_t rgb888);
        static void {vm_wrapper_name(method)}(mrbc_vm *vm, mrbc_value *v, int argc) {{
          size_t index = GET_INT_ARG(1);
          uint32_t rgb888 = GET_INT_ARG(2);
          m5unified_led_class_setcolor_size_t_uint32(index, rgb888);
          SET_NIL_RETURN();
        }}
    """)


def default_registry() -> OverrideRegistry:
    """
    Built-in escape hatches for M5Unified.
    """
    entries: Dict[str, OverrideAction] = {
        # Parser picks up "cfg.atom_display" style default expressions as types.
        "m5unified::dsp": SkipOverride(
            reason="Multiple overloads with problematic types. Use M5.begin(config) instead."
        ),
        # Display objects cannot be passed from PicoRuby.
        "m5unified::adddisplay": SkipOverride(reason="Takes M5GFX& parameter (object reference not supported in mrubyc)"),
        "log_class::setdisplay": SkipOverride(reason="Takes M5GFX& parameter (object reference not supported)"),
        "m5unified::begin": CustomOverride(
            native_wrapper=_m5unified_begin_native,
            binding=_m5unified_begin_binding,
        ),
        # RGBColor& flattened into an RGB888 integer.
        "led_class::setallcolor": CustomOverride(
            native_wrapper=_led_setallcolor_native,
            binding=_led_setallcolor_binding,
        ),
        "led_class::setcolor": CustomOverride(
            native_wrapper=_led_setcolor_native,
            binding=_led_setcolor_binding,
        ),
        # rtc_*_t& on the low-level RTC driver.
        "rtc_base::gettime": SkipOverride(reason="Returns rtc_time_t& (struct reference not supported)"),
        "rtc_base::getdate": SkipOverride(reason="Returns rtc_date_t& (struct reference not supported)"),
        "rtc_base::getdatetime": SkipOverride(reason="Returns rtc_datetime_t& (struct reference not supported)"),
        "rtc_base::settime": SkipOverride(reason="Takes rtc_time_t& parameter (struct reference not supported)"),
        "rtc_base::setdate": SkipOverride(reason="Takes rtc_date_t& parameter (struct reference not supported)"),
        "rtc_base::setdatetime": SkipOverride(reason="Takes rtc_datetime_t& parameter (struct reference not supported)"),
        "imu_class::getaccel": _xyz_array_override("imu_class", "getAccel", "M5.Imu.getAccel", ("ax", "ay", "az")),
        "imu_class::getgyro": _xyz_array_override("imu_class", "getGyro", "M5.Imu.getGyro", ("gx", "gy", "gz")),
        "imu_class::getmag": _xyz_array_override("imu_class", "getMag", "M5.Imu.getMag", ("mx", "my", "mz")),
        "rtc_class::gettime": _int_array_override(
            "getTime", "int8_t",
            (
                "rtc_time_t time = M5.Rtc.getTime();",
                "result[0] = time.hours;",
                "result[1] = time.minutes;",
                "result[2] = time.seconds;",
            ),
            ("hours", "minutes", "seconds"),
        ),
        "rtc_class::getdate": _int_array_override(
            "getDate", "int16_t",
            (
                "rtc_date_t date = M5.Rtc.getDate();",
                "result[0] = date.year;",
                "result[1] = date.month;",
                "result[2] = date.date;",
                "result[3] = date.weekDay;",
            ),
            ("year", "month", "date", "weekday"),
        ),
        "rtc_class::getdatetime": _int_array_override(
            "getDateTime", "int16_t",
            (
                "rtc_datetime_t dt = M5.Rtc.getDateTime();",
                "result[0] = dt.date.year;",
                "result[1] = dt.date.month;",
                "result[2] = dt.date.date;",
                "result[3] = dt.date.weekDay;",
                "result[4] = dt.time.hours;",
                "result[5] = dt.time.minutes;",
                "result[6] = dt.time.seconds;",
            ),
            ("year", "month", "date", "weekday", "hours", "minutes", "seconds"),
        ),
    }
    return OverrideRegistry(entries)


__all__ = [
    "SkipOverride",
    "CustomOverride",
    "OverrideAction",
    "OverrideRegistry",
    "normalize_key",
    "default_registry",
]
