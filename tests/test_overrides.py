from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from mrbgem_binding_generator.exceptions import BindingGeneratorError
from mrbgem_binding_generator.models import make_method
from mrbgem_binding_generator.overrides import (
    CustomOverride,
    OverrideRegistry,
    SkipOverride,
    default_registry,
    normalize_key,
)


class DefaultRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = default_registry()

    def test_lookup_is_case_insensitive(self) -> None:
        self.assertEqual(normalize_key("LED_Class", "setAllColor"), "led_class::setallcolor")
        self.assertTrue(self.registry.has_override("LED_Class", "setAllColor"))
        self.assertTrue(self.registry.has_override("led_class", "SETALLCOLOR"))
        self.assertFalse(self.registry.has_override("LED_Class", "begin"))
        self.assertIsNone(self.registry.action_for("LED_Class", "begin"))

    def test_skip_entries(self) -> None:
        self.assertIsInstance(self.registry.action_for("Log_Class", "setDisplay"), SkipOverride)
        self.assertIn("M5GFX&", self.registry.skip_reason("Log_Class", "setDisplay"))
        self.assertIsNone(self.registry.skip_reason("LED_Class", "setAllColor"))

    def test_led_override_declines_integer_overload(self) -> None:
        by_color = make_method("setAllColor", "void", [("const RGBColor&", "color")])
        by_int = make_method("setAllColor", "void", [("uint32_t", "rgb888")])
        self.assertIsInstance(self.registry.action_for("LED_Class", "setAllColor"), CustomOverride)

        native = self.registry.native_wrapper_for("LED_Class", by_color)
        self.assertIn("void m5unified_led_class_setallcolor_uint32(uint32_t rgb888)", native)
        self.assertIn("M5.Led.setAllColor(rgb888);", native)
        binding = self.registry.binding_for("LED_Class", by_color)
        self.assertIn("static void mrbc_m5_setallcolor_1(mrbc_vm *vm, mrbc_value *v, int argc)", binding)

        self.assertIsNone(self.registry.native_wrapper_for("LED_Class", by_int))
        self.assertIsNone(self.registry.binding_for("LED_Class", by_int))

    def test_imu_override_handles_output_pointer_overload_only(self) -> None:
        xyz = make_method("getAccel", "bool", [("float*", "ax"), ("float*", "ay"), ("float*", "az")])
        other = make_method("getAccel", "bool", [("float*", "values")])
        native = self.registry.native_wrapper_for("IMU_Class", xyz)
        binding = self.registry.binding_for("IMU_Class", xyz)
        self.assertIn("int m5unified_imu_class_getaccel_array(float* result)", native)
        self.assertIn("M5.Imu.getAccel(&ax, &ay, &az)", native)
        self.assertIn("extern int m5unified_imu_class_getaccel_array(float* result);", binding)
        self.assertIn("mrbc_m5_getaccel_3", binding)
        self.assertIn("mrbc_array_new(vm, 3)", binding)
        self.assertIsNone(self.registry.native_wrapper_for("IMU_Class", other))

    def test_m5unified_begin(self) -> None:
        no_args = make_method("begin", "void")
        with_cfg = make_method("begin", "void", [("config_t", "cfg")])
        self.assertIn("M5.begin(cfg);", self.registry.native_wrapper_for("M5Unified", no_args))
        self.assertIn("mrbc_m5_begin_0", self.registry.binding_for("M5Unified", no_args))
        self.assertIsNone(self.registry.native_wrapper_for("M5Unified", with_cfg))

    def test_rtc_date_flattened_to_four_integers(self) -> None:
        get_date = make_method("getDate", "rtc_date_t")
        native = self.registry.native_wrapper_for("RTC_Class", get_date)
        self.assertIn("int m5unified_rtc_class_getdate_array(int16_t* result)", native)
        self.assertIn("return 4;", native)
        self.assertIn("mrbc_array_new(vm, 4)", self.registry.binding_for("RTC_Class", get_date))


class RegistryTests(unittest.TestCase):
    def test_register_and_merge(self) -> None:
        base = OverrideRegistry({"A::run": SkipOverride("first")})
        self.assertEqual(base.skip_reason("a", "RUN"), "first")

        base.register("B", "stop", SkipOverride("stop"))
        self.assertEqual(len(base), 2)

        merged = base.merged(OverrideRegistry({"a::run": SkipOverride("second")}))
        self.assertEqual(merged.skip_reason("A", "run"), "second")
        self.assertEqual(base.skip_reason("A", "run"), "first")
        self.assertEqual([key for key, _ in merged], ["a::run", "b::stop"])

    def test_generic_methods_have_no_code(self) -> None:
        registry = OverrideRegistry()
        m = make_method("begin", "void")
        self.assertIsNone(registry.native_wrapper_for("LED_Class", m))
        self.assertIsNone(registry.binding_for("LED_Class", m))


class FromJsonTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, data) -> Path:
        path = self.tmp / "overrides.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_loads_skip_and_custom_entries(self) -> None:
        path = self._write({
            "Speaker_Class::tone": {"action": "skip", "reason": "needs a callback"},
            "Power_Class::getBatteryLevel": {
                "action": "custom",
                "arity": 0,
                "native_wrapper": "int32_t battery_level(void) {\n  return M5.Power.getBatteryLevel();\n}\n",
                "binding": "static void mrbc_m5_getbatterylevel_0(mrbc_vm *vm, mrbc_value *v, int argc) {}\n",
            },
        })
        registry = OverrideRegistry.from_json(path)
        self.assertEqual(registry.skip_reason("speaker_class", "tone"), "needs a callback")

        m = make_method("getBatteryLevel", "int32_t")
        self.assertIn("battery_level(void)", registry.native_wrapper_for("Power_Class", m))
        self.assertIn("mrbc_m5_getbatterylevel_0", registry.binding_for("Power_Class", m))
        # The arity filter declines other overloads
        m1 = make_method("getBatteryLevel", "int32_t", [("int", "samples")])
        self.assertIsNone(registry.native_wrapper_for("Power_Class", m1))

    def test_missing_file(self) -> None:
        with self.assertRaises(BindingGeneratorError) as cm:
            OverrideRegistry.from_json(self.tmp / "nope.json")
        self.assertIn("does not exist", str(cm.exception))

    def test_invalid_json(self) -> None:
        path = self.tmp / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(BindingGeneratorError):
            OverrideRegistry.from_json(path)

    def test_rejects_malformed_entries(self) -> None:
        for data in ([], {"no_separator": {"action": "skip"}}, {"A::b": {"action": "rename"}}):
            with self.subTest(data=data):
                with self.assertRaises(BindingGeneratorError):
                    OverrideRegistry.from_json(self._write(data))

    def test_custom_entry_requires_arity(self) -> None:
        entry = {
            "action": "custom",
            "native_wrapper": "void m5_led_setcolor(uint32_t c) {}\n",
            "binding": "static void mrbc_m5_setcolor_1(mrbc_vm *vm, mrbc_value *v, int argc) {}\n",
        }
        for arity in (None, "1", True, -1, 1.0):
            with self.subTest(arity=arity):
                data = dict(entry) if arity is None else dict(entry, arity=arity)
                with self.assertRaises(BindingGeneratorError) as cm:
                    OverrideRegistry.from_json(self._write({"led_class::setcolor": data}))
                self.assertIn("arity", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
