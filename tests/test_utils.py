from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from mrbgem_binding_generator.exceptions import GenerationError
from mrbgem_binding_generator.utils import (
    TemplateRenderer,
    atomic_write_text,
    normalize_newlines,
    staged_output_dir,
    write_text,
)


class StagedOutputTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.target = self.tmp / "gem"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_commit_moves_files_and_keeps_unrelated_ones(self) -> None:
        self.target.mkdir()
        (self.target / "keep.txt").write_text("mine", encoding="utf-8")
        with staged_output_dir(self.target) as root:
            self.assertNotEqual(root, self.target)
            write_text(root / "src" / "a.c", "int a;\n")
            self.assertFalse((self.target / "src" / "a.c").exists())
        self.assertEqual((self.target / "src" / "a.c").read_text(encoding="utf-8"), "int a;\n")
        self.assertEqual((self.target / "keep.txt").read_text(encoding="utf-8"), "mine")
        self.assertEqual(sorted(p.name for p in self.tmp.iterdir()), ["gem"])

    def test_error_discards_staging(self) -> None:
        with self.assertRaises(RuntimeError):
            with staged_output_dir(self.target) as root:
                write_text(root / "a.c", "int a;\n")
                raise RuntimeError("boom")
        self.assertEqual(list(self.tmp.iterdir()), [])

    def test_dry_run_yields_target(self) -> None:
        with staged_output_dir(self.target, dry_run=True) as root:
            self.assertEqual(root, self.target)
            write_text(root / "a.c", "int a;\n", dry_run=True)
        self.assertFalse(self.target.exists())


class WriteTests(unittest.TestCase):
    def test_atomic_write_normalizes_newlines(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "nested" / "out.txt"
            atomic_write_text(path, "a\r\nb\rc\n")
            self.assertEqual(path.read_bytes(), b"a\nb\nc\n")
            self.assertEqual([p.name for p in path.parent.iterdir()], ["out.txt"])

    def test_normalize_newlines(self) -> None:
        self.assertEqual(normalize_newlines("x\r\ny"), "x\ny")


class TemplateRendererTests(unittest.TestCase):
    def test_user_templates_take_precedence(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            Path(d, "mrbgem.rake.j2").write_text("custom {{ name }}\n", encoding="utf-8")
            renderer = TemplateRenderer(Path(d))
            self.assertEqual(renderer.render("mrbgem.rake.j2", {"name": "gem"}), "custom gem\n")

    def test_missing_template(self) -> None:
        with self.assertRaises(GenerationError):
            TemplateRenderer().render("missing.j2", {})

    def test_filters(self) -> None:
        renderer = TemplateRenderer()
        template = renderer.env.from_string("{{ 'bool' | ruby_type }} {{ 'const char*' | ruby_type }}")
        self.assertEqual(template.render(), "Boolean String")


if __name__ == "__main__":
    unittest.main()
