"""Regression tests for importing the directory core without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _userdir_modules() -> dict:
    return {name: module for name, module in sys.modules.items() if name == "userdir" or name.startswith("userdir.")}


class CoreImportTests(unittest.TestCase):
    def setUp(self) -> None:
        self._saved_modules = _userdir_modules()

    def tearDown(self) -> None:
        for name in _userdir_modules():
            sys.modules.pop(name, None)
        sys.modules.update(self._saved_modules)

    def test_import_directory_without_fastapi(self) -> None:
        """Importing userdir.directory should succeed even if FastAPI is missing."""

        for name in _userdir_modules():
            sys.modules.pop(name, None)

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None
        try:
            directory_module = importlib.import_module("userdir.directory")
            self.assertTrue(hasattr(directory_module, "UserDirectory"))

            package = sys.modules.get("userdir")
            self.assertIsNotNone(package)
            self.assertTrue(hasattr(package, "UserDirectory"))
            self.assertTrue(callable(package.create_app))
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
