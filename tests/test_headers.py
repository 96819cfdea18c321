from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from mrbgem_binding_generator.exceptions import HeaderNotFoundError
from mrbgem_binding_generator.headers import HeaderSource, expand_header_paths, list_headers, read_header


class HeaderSourceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        for rel in ("src/utility/Power_Class.h", "src/M5Unified.h", "include/extra.h", "src/M5Unified.cpp", "docs/notes.h"):
            p = self.root / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text("// header\n", encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_lists_headers_under_src_and_include_sorted(self) -> None:
        headers = list_headers(self.root)
        rel = [h.relative_to(self.root).as_posix() for h in headers]
        self.assertEqual(rel, ["include/extra.h", "src/M5Unified.h", "src/utility/Power_Class.h"])
        self.assertEqual(headers, sorted(headers))

    def test_missing_search_dirs_are_ignored(self) -> None:
        self.assertEqual(list_headers(self.root / "nowhere"), [])

    def test_include_paths_only_existing_dirs(self) -> None:
        source = HeaderSource(self.root)
        self.assertEqual(source.include_paths(), [self.root / "src", self.root / "include"])
        (self.root / "include" / "extra.h").unlink()
        (self.root / "include").rmdir()
        self.assertEqual(source.include_paths(), [self.root / "src"])

    def test_read_existing_and_missing(self) -> None:
        source = HeaderSource(self.root)
        self.assertEqual(source.read(self.root / "src" / "M5Unified.h"), "// header\n")
        with self.assertRaises(HeaderNotFoundError) as cm:
            read_header(self.root / "src" / "Gone.h")
        self.assertIn("File does not exist", str(cm.exception))
        self.assertEqual(cm.exception.to_dict()["error_type"], "HeaderNotFoundError")

    def test_expand_header_paths(self) -> None:
        explicit = self.root / "src" / "M5Unified.h"
        found = expand_header_paths([self.root / "src", explicit])
        self.assertEqual(
            found,
            sorted({explicit.resolve(), (self.root / "src" / "utility" / "Power_Class.h").resolve()}),
        )
        with self.assertRaises(HeaderNotFoundError):
            expand_header_paths([self.root / "src" / "Missing.h"])


if __name__ == "__main__":
    unittest.main()
