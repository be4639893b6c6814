import tempfile
import unittest
from pathlib import Path

from docgraph.file_walker import is_html_file, iter_html_files


class FileWalkerTests(unittest.TestCase):
    def test_yields_html_files_and_skips_hidden_entries(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "a" / ".git").mkdir(parents=True)
            (root / "a" / "x.html").write_text("<p>x</p>", encoding="utf-8")
            (root / "a" / "B.HTML").write_text("<p>b</p>", encoding="utf-8")
            (root / "a" / ".hidden.html").write_text("<p>h</p>", encoding="utf-8")
            (root / "a" / ".git" / "y.html").write_text("<p>y</p>", encoding="utf-8")
            (root / "a" / "z.txt").write_text("z", encoding="utf-8")

            names = sorted(path.name for path in iter_html_files([root / "a"]))

        self.assertEqual(names, ["B.HTML", "x.html"])

    def test_missing_root_is_skipped_with_warning(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "present.html").write_text("<p>p</p>", encoding="utf-8")

            with self.assertLogs("docgraph.index", level="WARNING") as captured:
                paths = list(iter_html_files([root / "missing", root]))

        self.assertEqual([path.name for path in paths], ["present.html"])
        self.assertTrue(any("does not exist" in line for line in captured.output))

    def test_single_file_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "one.html"
            path.write_text("<p>1</p>", encoding="utf-8")

            self.assertEqual(list(iter_html_files([path])), [path.resolve()])

    def test_is_html_file(self) -> None:
        self.assertTrue(is_html_file(Path("docs/readme.html")))
        self.assertTrue(is_html_file(Path("docs/README.HTML")))
        self.assertFalse(is_html_file(Path("docs/readme.htm")))
        self.assertFalse(is_html_file(Path("docs/.draft.html")))


if __name__ == "__main__":
    unittest.main()
