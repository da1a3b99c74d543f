import io
import json
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rich.console import Console  # noqa: E402

from diffweave import viewer_app  # noqa: E402
from diffweave.rows import Comment, Thread  # noqa: E402

DIFF = (
    "diff --git a/app.py b/app.py\n"
    "--- a/app.py\n"
    "+++ b/app.py\n"
    "@@ -1,11 +1,11 @@\n"
    + "".join(f" line {number}\n" for number in range(1, 11))
    + "-old tail\n"
    "+new tail\n"
)


class TestViewerApp(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.diff_path = self.tmp / "change.diff"
        self.diff_path.write_text(DIFF, encoding="utf-8")

    def tearDown(self):
        self._tmp.cleanup()

    def test_parse_args_defaults(self):
        args = viewer_app.parse_app_args(["change.diff"])
        self.assertEqual(args.path, "change.diff")
        self.assertEqual(args.page_size, 40)
        self.assertEqual(args.ui, "textual")
        self.assertEqual(args.author, "user")
        self.assertFalse(args.once)

    def test_run_once_success(self):
        stdout = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(io.StringIO()):
            code = viewer_app.run_app([str(self.diff_path), "--once", "--page-size", "5", "--ui", "prompt"])

        self.assertEqual(code, 0)
        self.assertIn("Page 1/", stdout.getvalue())

    def test_run_once_with_review_warning(self):
        review = self.tmp / "review.json"
        review.write_text(
            json.dumps(
                {
                    "change_id": "abc",
                    "threads": [{"id": "m", "file": "<commit-message>", "line_start": 1, "status": "open"}],
                }
            ),
            encoding="utf-8",
        )
        stdout = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(io.StringIO()):
            code = viewer_app.run_app([str(self.diff_path), "--once", "--review", str(review)])

        self.assertEqual(code, 0)
        self.assertIn("hidden", stdout.getvalue())

    def test_run_with_missing_file_returns_error(self):
        with redirect_stdout(io.StringIO()), redirect_stderr(io.StringIO()):
            code = viewer_app.run_app([str(self.tmp / "missing.diff"), "--once", "--ui", "prompt"])
        self.assertEqual(code, 1)

    def test_run_without_input_returns_usage_error(self):
        with redirect_stdout(io.StringIO()), redirect_stderr(io.StringIO()):
            code = viewer_app.run_app(["--once"])
        self.assertEqual(code, 2)

    def test_run_with_invalid_page_size_returns_error(self):
        with redirect_stdout(io.StringIO()), redirect_stderr(io.StringIO()):
            code = viewer_app.run_app([str(self.diff_path), "--once", "--page-size", "0", "--ui", "prompt"])
        self.assertEqual(code, 2)


class TestPromptApp(unittest.TestCase):
    def _run(self, commands: list[str], threads: list | None = None) -> tuple[int, list, str]:
        console = Console(file=io.StringIO(), width=160)
        threads = [] if threads is None else threads
        with mock.patch.object(viewer_app.Prompt, "ask", side_effect=commands):
            code = viewer_app.run_prompt_app(console, DIFF, threads, [], None, page_size=50, author="alice")
        return code, threads, console.file.getvalue()

    def test_quit(self):
        code, _, output = self._run(["quit"])
        self.assertEqual(code, 0)
        self.assertIn("Commands", output)

    def test_expand_shows_hidden_lines(self):
        _, _, output = self._run(["expand app.py:4", "quit"])
        self.assertIn("line 5", output)

    def test_comment_and_resolve(self):
        code, threads, output = self._run(["select app.py:11", "comment Needs a test", "list", "quit"])

        self.assertEqual(code, 0)
        self.assertEqual(len(threads), 1)
        self.assertEqual((threads[0].file, threads[0].line_start, threads[0].line_end), ("app.py", 11, 11))
        self.assertEqual(threads[0].comments[0].author, "alice")
        self.assertIn("Needs a test", output)

        thread_id = threads[0].id
        self._run([f"resolve {thread_id[:6]}", "quit"], threads)
        self.assertEqual(threads[0].status, "resolved")

    def test_comment_requires_selection(self):
        _, threads, output = self._run(["comment hi", "quit"])
        self.assertEqual(threads, [])
        self.assertIn("Usage: select", output)

    def test_unknown_commands_and_bad_input(self):
        _, _, output = self._run(["frobnicate", "select nope", "list x", "resolve zzz", "exit"])

        self.assertIn("Unknown command: frobnicate", output)
        self.assertIn("Invalid selection", output)
        self.assertIn("Invalid page: x", output)
        self.assertIn("Thread not found: zzz", output)

    def test_collapse_folds_run_holding_a_thread(self):
        thread = Thread(
            id="hidden",
            file="app.py",
            line_start=5,
            line_end=5,
            comments=(Comment(author="user", text="look here"),),
        )
        _, _, output = self._run(["collapse app.py:4", "expand app.py:4", "collapse", "quit"], [thread])

        self.assertEqual(output.count("look here"), 2)
        self.assertEqual(output.count("4 unchanged line(s)"), 2)


if __name__ == "__main__":
    unittest.main()
