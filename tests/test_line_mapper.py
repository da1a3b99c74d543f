import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffweave.line_mapper import (  # noqa: E402
    Hunk,
    MappedPosition,
    apply_display_positions,
    map_all_threads,
    map_line,
    parse_file_hunks,
    parse_hunk_header,
)
from diffweave.rows import Thread  # noqa: E402


def make_thread(thread_id: str, start: int, end: int | None = None, commit: str | None = "c1", file: str = "test.rs") -> Thread:
    return Thread(id=thread_id, file=file, line_start=start, line_end=start if end is None else end, created_at_commit=commit)


SHIFT_DOWN_DIFF = """\
diff --git a/test.rs b/test.rs
index 1111111..2222222 100644
--- a/test.rs
+++ b/test.rs
@@ -1,3 +1,6 @@
+new1
+new2
+new3
 line 1
 line 2
 line 3
"""

MULTI_HUNK_DIFF = """\
diff --git a/test.rs b/test.rs
--- a/test.rs
+++ b/test.rs
@@ -3,1 +3,3 @@
 line 3
+new_a
+new_b
@@ -14,3 +16,2 @@
 line 14
-line 15
 line 16
"""

DELETED_FILE_DIFF = """\
diff --git a/test.rs b/test.rs
deleted file mode 100644
index 1111111..0000000
"""


class TestHunkParsing(unittest.TestCase):
    def test_parse_hunk_header(self):
        hunk = parse_hunk_header("@@ -10,5 +12,7 @@ some context")
        self.assertEqual((hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count), (10, 5, 12, 7))

    def test_parse_hunk_header_without_count(self):
        hunk = parse_hunk_header("@@ -1 +1,3 @@")
        self.assertEqual((hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count), (1, 1, 1, 3))

    def test_parse_hunk_header_rejects_garbage(self):
        self.assertIsNone(parse_hunk_header("@@ nonsense"))
        self.assertIsNone(parse_hunk_header("@@ -x,1 +1,1 @@"))

    def test_parse_file_hunks(self):
        diff = (
            "diff --git a/src/main.rs b/src/main.rs\n"
            "--- a/src/main.rs\n"
            "+++ b/src/main.rs\n"
            "@@ -5,3 +5,5 @@ fn main() {\n"
            "     let x = 1;\n"
            "+    let y = 2;\n"
            "+    let z = 3;\n"
            "     let a = 4;\n"
        )
        hunks = parse_file_hunks(diff, "src/main.rs")
        self.assertEqual(len(hunks), 1)
        self.assertEqual((hunks[0].old_start, hunks[0].old_count, hunks[0].new_start, hunks[0].new_count), (5, 3, 5, 5))
        self.assertEqual(hunks[0].lines, ["context", "add", "add", "context"])

    def test_parse_file_hunks_only_for_target_file(self):
        diff = (
            "diff --git a/foo.rs b/foo.rs\n"
            "--- a/foo.rs\n"
            "+++ b/foo.rs\n"
            "@@ -1,3 +1,4 @@\n"
            " line1\n"
            "+inserted\n"
            " line2\n"
            " line3\n"
            "diff --git a/bar.rs b/bar.rs\n"
            "--- a/bar.rs\n"
            "+++ b/bar.rs\n"
            "@@ -1,2 +1,3 @@\n"
            " a\n"
            "+b\n"
            " c\n"
        )
        foo = parse_file_hunks(diff, "foo.rs")
        bar = parse_file_hunks(diff, "bar.rs")

        self.assertEqual([(hunk.old_count, hunk.new_count) for hunk in foo], [(3, 4)])
        self.assertEqual([(hunk.old_count, hunk.new_count) for hunk in bar], [(2, 3)])
        self.assertEqual(parse_file_hunks(diff, "nope.rs"), [])


class TestMapLine(unittest.TestCase):
    def test_before_hunk(self):
        hunks = [Hunk(10, 3, 10, 5, ["context", "add", "add", "context", "context"])]
        self.assertEqual(map_line(5, hunks), 5)

    def test_after_hunk(self):
        hunks = [Hunk(10, 3, 10, 5, ["context", "add", "add", "context", "context"])]
        self.assertEqual(map_line(20, hunks), 22)

    def test_deleted_lines(self):
        hunks = [Hunk(10, 3, 10, 1, ["context", "delete", "delete"])]
        self.assertIsNone(map_line(11, hunks))
        self.assertIsNone(map_line(12, hunks))
        self.assertEqual(map_line(10, hunks), 10)

    def test_context_inside_hunk(self):
        hunks = [Hunk(10, 2, 10, 4, ["context", "add", "add", "context"])]
        self.assertEqual(map_line(10, hunks), 10)
        self.assertEqual(map_line(11, hunks), 13)

    def test_multiple_hunks(self):
        hunks = [
            Hunk(5, 2, 5, 4, ["context", "add", "add", "context"]),
            Hunk(20, 3, 22, 1, ["context", "delete", "delete"]),
        ]
        self.assertEqual(map_line(3, hunks), 3)
        self.assertEqual(map_line(10, hunks), 12)
        self.assertIsNone(map_line(21, hunks))
        self.assertEqual(map_line(30, hunks), 30)

    def test_no_hunks(self):
        self.assertEqual(map_line(42, []), 42)


class TestMapAllThreads(unittest.TestCase):
    def _fetcher(self, diff_text: str, calls: list | None = None):
        def fetch(file: str, from_commit: str, to_commit: str) -> str:
            if calls is not None:
                calls.append((file, from_commit, to_commit))
            return diff_text

        return fetch

    def test_lines_shift_down(self):
        mapped = map_all_threads([make_thread("t1", 2)], "c2", self._fetcher(SHIFT_DOWN_DIFF))
        self.assertEqual(mapped["t1"], MappedPosition(5, 5, False))

    def test_multiple_hunks(self):
        threads = [make_thread("t1", 1), make_thread("t2", 10), make_thread("t3", 15), make_thread("t4", 20)]
        mapped = map_all_threads(threads, "c2", self._fetcher(MULTI_HUNK_DIFF))

        self.assertEqual(mapped["t1"].line_start, 1)
        self.assertEqual(mapped["t2"].line_start, 12)
        self.assertTrue(mapped["t3"].is_deleted)
        self.assertIsNone(mapped["t3"].line_start)
        self.assertEqual(mapped["t4"].line_start, 21)
        self.assertFalse(mapped["t4"].is_deleted)

    def test_range_with_one_deleted_end_is_deleted(self):
        mapped = map_all_threads([make_thread("t", 14, 15)], "c2", self._fetcher(MULTI_HUNK_DIFF))
        self.assertEqual(mapped["t"], MappedPosition(16, None, True))

    def test_same_commit_and_missing_commit_are_unchanged(self):
        calls: list = []
        threads = [make_thread("same", 2, 3, commit="c2"), make_thread("legacy", 1, commit=None)]
        mapped = map_all_threads(threads, "c2", self._fetcher(SHIFT_DOWN_DIFF, calls))

        self.assertEqual(mapped["same"], MappedPosition(2, 3, False))
        self.assertEqual(mapped["legacy"], MappedPosition(1, 1, False))
        self.assertEqual(calls, [])

    def test_empty_diff_is_unchanged(self):
        mapped = map_all_threads([make_thread("t", 4)], "c2", self._fetcher("  \n"))
        self.assertEqual(mapped["t"], MappedPosition(4, 4, False))

    def test_deleted_file_marks_threads_deleted(self):
        mapped = map_all_threads([make_thread("t", 1, 2)], "c2", self._fetcher(DELETED_FILE_DIFF))
        self.assertEqual(mapped["t"], MappedPosition(None, None, True))

    def test_one_fetch_per_file_and_commit(self):
        calls: list = []
        threads = [make_thread("a", 1), make_thread("b", 10), make_thread("c", 3, file="other.rs")]
        map_all_threads(threads, "c2", self._fetcher(MULTI_HUNK_DIFF, calls))
        self.assertEqual(sorted(calls), [("other.rs", "c1", "c2"), ("test.rs", "c1", "c2")])

    def test_failing_fetch_is_logged_and_marks_deleted(self):
        def fetch(file: str, from_commit: str, to_commit: str) -> str:
            raise RuntimeError("bad revision")

        with self.assertLogs("diffweave.line_mapper", level="WARNING") as captured:
            mapped = map_all_threads([make_thread("t", 3)], "c2", fetch)

        self.assertTrue(mapped["t"].is_deleted)
        self.assertIn("bad revision", captured.output[0])


class TestApplyDisplayPositions(unittest.TestCase):
    def test_sets_display_fields(self):
        threads = [make_thread("moved", 2), make_thread("still", 7), make_thread("unmapped", 9)]
        mapped = {"moved": MappedPosition(5, 5), "still": MappedPosition(7, 7)}
        moved, still, unmapped = apply_display_positions(threads, mapped)

        self.assertEqual((moved.display_line_start, moved.display_line_end), (5, 5))
        self.assertTrue(moved.is_displaced)
        self.assertFalse(still.is_displaced)
        self.assertIsNone(unmapped.display_line_start)
        self.assertEqual(moved.line_start, 2)


if __name__ == "__main__":
    unittest.main()
