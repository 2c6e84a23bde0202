from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from winebuild.src.catalog import PatchCatalog
from winebuild.src.context import Console
from winebuild.src.errors import SelectionAborted
from winebuild.src.selection import FailFastSelection, LatestSelection
from winebuild.src.version import (
    VersionResolver,
    is_version,
    major_minor,
    sort_versions,
    template_variables,
)


class VersionHelpersTests(unittest.TestCase):
    def test_is_version(self) -> None:
        self.assertTrue(is_version("10"))
        self.assertTrue(is_version("10.1.0"))
        self.assertFalse(is_version(""))
        self.assertFalse(is_version(None))
        self.assertFalse(is_version("10.1-rc1"))
        self.assertFalse(is_version("v10.1"))

    def test_sort_is_numeric(self) -> None:
        self.assertEqual(sort_versions(["10.1", "9.22", "10.0", "9.3"]), ["9.3", "9.22", "10.0", "10.1"])

    def test_major_minor(self) -> None:
        self.assertEqual(major_minor("10.1.0"), "10.1")
        self.assertEqual(major_minor("10"), "10")

    def test_template_variables(self) -> None:
        self.assertEqual(
            template_variables("10.1", "wine"),
            {"version": "10.1", "major": "10", "minor": "1", "series": "10.x", "prefix": "wine"},
        )


class VersionResolverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.tree = self.root / "wine-src"
        self.tree.mkdir()
        patches = self.root / "patches"
        for version in ("9.22", "10.1"):
            (patches / f"wine-{version}").mkdir(parents=True)
        self.catalog = PatchCatalog([patches])

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _resolver(self, hint: str | None = None, selection=None) -> VersionResolver:
        return VersionResolver(
            catalog=self.catalog,
            selection=selection or FailFastSelection(),
            console=Console("none"),
            hint=hint,
        )

    def test_detects_from_version_file(self) -> None:
        for line, expected in (
            ("Wine version 10.1", "10.1"),
            ("wine-9.22", "9.22"),
            ("version 10.0.1", "10.0.1"),
            ("10.2", "10.2"),
        ):
            (self.tree / "VERSION").write_text(f"{line}\nsecond line 1.0\n")
            self.assertEqual(self._resolver().detect(self.tree), expected, line)

    def test_falls_back_to_configure_ac_assignment(self) -> None:
        (self.tree / "configure.ac").write_text(textwrap.dedent(
            """
            AC_PREREQ(2.69)
            WINE_VERSION=10.1
            """
        ))
        self.assertEqual(self._resolver().detect(self.tree), "10.1")

    def test_falls_back_to_ac_init(self) -> None:
        (self.tree / "VERSION").write_text("unreleased\n")
        (self.tree / "configure.ac").write_text(
            "AC_INIT([Wine],[9.22],[wine-devel@winehq.org],[wine],[https://www.winehq.org])\n"
        )
        self.assertEqual(self._resolver().detect(self.tree), "9.22")

    def test_undetectable_returns_none(self) -> None:
        self.assertIsNone(self._resolver().detect(self.tree))

    def test_valid_hint_wins_over_detection(self) -> None:
        (self.tree / "VERSION").write_text("Wine version 10.1\n")
        self.assertEqual(self._resolver(hint="9.22").resolve(self.tree), "9.22")

    def test_unknown_hint_falls_back_to_detection(self) -> None:
        (self.tree / "VERSION").write_text("Wine version 10.1\n")
        self.assertEqual(self._resolver(hint="8.0").resolve(self.tree), "10.1")

    def test_choose_uses_hint_then_selection(self) -> None:
        self.assertEqual(self._resolver(hint="9.22").choose(), "9.22")
        self.assertEqual(self._resolver(hint="8.0", selection=LatestSelection()).choose(), "10.1")
        with self.assertRaises(SelectionAborted):
            self._resolver().choose()


if __name__ == "__main__":
    unittest.main()
