from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from mrbgem_binding_generator.exceptions import BindingGeneratorError
from mrbgem_binding_generator.type_mapping import (
    ClassifierConfig,
    TypeCategory,
    TypeClassifier,
    c_type_for,
    classify,
    is_unsupported_type,
    marshal_strategy,
    native_return_type,
    normalize_type,
    ruby_type_name,
    unsupported_reason,
)


class BoundaryTableTests(unittest.TestCase):
    UNSUPPORTED = {
        "M5GFX&": TypeCategory.UNSUPPORTED_OBJECT_REF,
        "rtc_time_t&": TypeCategory.UNSUPPORTED_STRUCT_REF,
        "void (*)(int)": TypeCategory.UNSUPPORTED_FUNCTION_POINTER,
        "Type&&": TypeCategory.UNSUPPORTED_RVALUE_REF,
        "std::function<void()>": TypeCategory.UNSUPPORTED_TEMPLATE,
        "cfg.atom_display": TypeCategory.UNSUPPORTED_MALFORMED,
        "const uint8_t*": TypeCategory.UNSUPPORTED_POINTER_ARRAY,
    }
    SUPPORTED = {
        "int": TypeCategory.PRIMITIVE_INT,
        "float": TypeCategory.PRIMITIVE_FLOAT,
        "bool": TypeCategory.PRIMITIVE_BOOL,
        "char*": TypeCategory.CSTRING,
        "size_t": TypeCategory.PRIMITIVE_INT,
    }

    def test_unsupported(self) -> None:
        for raw, category in self.UNSUPPORTED.items():
            with self.subTest(raw=raw):
                self.assertEqual(classify(raw), category)
                self.assertTrue(is_unsupported_type(raw))
                self.assertIsNotNone(unsupported_reason(raw))

    def test_supported(self) -> None:
        for raw, category in self.SUPPORTED.items():
            with self.subTest(raw=raw):
                self.assertEqual(classify(raw), category)
                self.assertFalse(is_unsupported_type(raw))
                self.assertIsNone(unsupported_reason(raw))


class ClassifyTests(unittest.TestCase):
    def test_more_references(self) -> None:
        self.assertEqual(classify("const M5GFX &"), TypeCategory.UNSUPPORTED_OBJECT_REF)
        self.assertEqual(classify("LED_Class&"), TypeCategory.UNSUPPORTED_OBJECT_REF)
        self.assertEqual(classify("const rtc_date_t &"), TypeCategory.UNSUPPORTED_STRUCT_REF)
        self.assertEqual(classify("tm&"), TypeCategory.UNSUPPORTED_STRUCT_REF)
        # Primitive references pass by value
        self.assertEqual(classify("const int&"), TypeCategory.PRIMITIVE_INT)

    def test_pointers(self) -> None:
        self.assertEqual(classify("float*"), TypeCategory.UNSUPPORTED_POINTER_ARRAY)
        self.assertEqual(classify("int16_t *"), TypeCategory.UNSUPPORTED_POINTER_ARRAY)
        self.assertEqual(classify("const char*"), TypeCategory.CSTRING)
        self.assertEqual(classify("const char *"), TypeCategory.CSTRING)
        self.assertEqual(classify("void*"), TypeCategory.OPAQUE_POINTER)
        self.assertEqual(classify("i2c_port_t*"), TypeCategory.OPAQUE_POINTER)

    def test_void_and_catch_all(self) -> None:
        self.assertEqual(classify("void"), TypeCategory.VOID)
        self.assertEqual(classify("board_t"), TypeCategory.PRIMITIVE_INT)
        self.assertEqual(classify("double"), TypeCategory.PRIMITIVE_FLOAT)

    def test_first_match_wins(self) -> None:
        # Malformed beats template
        self.assertEqual(classify("a.b<int>"), TypeCategory.UNSUPPORTED_MALFORMED)
        # Function pointer beats pointer array
        self.assertEqual(classify("int (*)(int*)"), TypeCategory.UNSUPPORTED_FUNCTION_POINTER)

    def test_normalize_type(self) -> None:
        self.assertEqual(normalize_type("const int&"), "int")
        self.assertEqual(normalize_type("const char *"), "char*")
        self.assertEqual(normalize_type(" uint8_t "), "uint8_t")

    def test_custom_classifier_config(self) -> None:
        classifier = TypeClassifier(ClassifierConfig(
            object_ref_patterns=(r"^Gfx",),
            struct_ref_patterns=(r"_s$",),
            known_struct_names=frozenset({"point"}),
        ))
        self.assertEqual(classifier.classify("GfxCanvas&"), TypeCategory.UNSUPPORTED_OBJECT_REF)
        self.assertEqual(classifier.classify("color_s&"), TypeCategory.UNSUPPORTED_STRUCT_REF)
        self.assertEqual(classifier.classify("point&"), TypeCategory.UNSUPPORTED_STRUCT_REF)
        # Not covered by the custom conventions
        self.assertFalse(classifier.is_unsupported_type("M5GFX&"))
        self.assertEqual(classifier.unsupported_reason("point&"), "struct reference")

    def test_returned_references_become_copies(self) -> None:
        classifier = TypeClassifier()
        self.assertEqual(classifier.native_return_type("const int&"), "const int")
        self.assertEqual(classifier.native_return_type("const bool&"), "int")
        self.assertEqual(native_return_type("const char*"), "const char*")


class ClassifierConfigJsonTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "type_rules.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _load(self, data) -> ClassifierConfig:
        self.path.write_text(json.dumps(data), encoding="utf-8")
        return ClassifierConfig.from_json(self.path)

    def test_omitted_keys_keep_defaults(self) -> None:
        config = self._load({"known_struct_names": ["sensors_event"]})
        self.assertEqual(config.known_struct_names, frozenset({"sensors_event"}))
        self.assertEqual(config.object_ref_patterns, ClassifierConfig().object_ref_patterns)
        self.assertEqual(config.struct_ref_patterns, ClassifierConfig().struct_ref_patterns)

        classifier = TypeClassifier(config)
        self.assertEqual(classifier.classify("sensors_event&"), TypeCategory.UNSUPPORTED_STRUCT_REF)
        self.assertEqual(classifier.classify("M5GFX&"), TypeCategory.UNSUPPORTED_OBJECT_REF)

    def test_rejects_bad_files(self) -> None:
        for data in (
            ["_t$"],
            {"struct_patterns": ["_t$"]},
            {"known_struct_names": "tm"},
            {"object_ref_patterns": [1]},
            {"object_ref_patterns": ["(unclosed"]},
        ):
            with self.subTest(data=data):
                with self.assertRaises(BindingGeneratorError):
                    self._load(data)

    def test_missing_file(self) -> None:
        with self.assertRaises(BindingGeneratorError) as cm:
            ClassifierConfig.from_json(self.path)
        self.assertIn("does not exist", str(cm.exception))


class MarshalStrategyTests(unittest.TestCase):
    def test_integer(self) -> None:
        s = marshal_strategy("uint8_t")
        self.assertEqual(s.c_type, "uint8_t")
        self.assertEqual(s.arg_expression(1), "GET_INT_ARG(1)")
        self.assertEqual(s.return_statement("result"), "SET_INT_RETURN(result);")

    def test_float(self) -> None:
        s = marshal_strategy("float")
        self.assertEqual(s.arg_expression(2), "GET_FLOAT_ARG(2)")
        self.assertEqual(s.return_statement("result"), "SET_FLOAT_RETURN(result);")

    def test_bool_is_int_on_the_native_side(self) -> None:
        s = marshal_strategy("bool")
        self.assertEqual(s.c_type, "int")
        self.assertEqual(s.arg_expression(1), "GET_INT_ARG(1)")
        self.assertEqual(s.return_statement("result"), "SET_BOOL_RETURN(result);")
        self.assertEqual(c_type_for("bool"), "int")
        self.assertEqual(native_return_type("bool"), "int")
        self.assertEqual(native_return_type("int32_t"), "int32_t")

    def test_cstring(self) -> None:
        s = marshal_strategy("const char*")
        self.assertEqual(s.c_type, "const char*")
        self.assertEqual(s.arg_expression(1), "(const char*)GET_STRING_ARG(1)")
        self.assertEqual(s.return_statement("result"), "SET_RETURN(mrbc_string_new_cstr(vm, result));")

    def test_opaque_pointer(self) -> None:
        s = marshal_strategy("void*")
        self.assertEqual(s.arg_expression(3), "(void*)(intptr_t)GET_INT_ARG(3)")
        self.assertEqual(s.return_statement("result"), "SET_INT_RETURN((intptr_t)result);")

    def test_void(self) -> None:
        s = marshal_strategy("void")
        self.assertEqual(s.return_statement(), "SET_NIL_RETURN();")

    def test_unsupported_types_have_no_strategy(self) -> None:
        for raw in ("M5GFX&", "float*", "std::vector<int>"):
            with self.subTest(raw=raw):
                with self.assertRaises(ValueError):
                    marshal_strategy(raw)

    def test_ruby_type_names(self) -> None:
        self.assertEqual(ruby_type_name("void"), "nil")
        self.assertEqual(ruby_type_name("int"), "Integer")
        self.assertEqual(ruby_type_name("double"), "Float")
        self.assertEqual(ruby_type_name("bool"), "Boolean")
        self.assertEqual(ruby_type_name("const char*"), "String")
        self.assertEqual(ruby_type_name("M5GFX&"), "Object")


if __name__ == "__main__":
    unittest.main()
