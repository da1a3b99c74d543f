import asyncio
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from textual.widgets import DataTable  # noqa: E402

from diffweave.rows import CollapsedRun, Comment, CommentEditor, Selection, Thread, ThreadRow  # noqa: E402
from diffweave.viewer_textual import DiffweaveTextualApp  # noqa: E402

# rows: 0 file, 1 hunk, 2-4 lines 1-3, 5 fold (4-7), 6-8 lines 8-10, 9 delete, 10 add (new line 11)
DIFF = (
    "diff --git a/app.py b/app.py\n"
    "--- a/app.py\n"
    "+++ b/app.py\n"
    "@@ -1,11 +1,11 @@\n"
    + "".join(f" line {number}\n" for number in range(1, 11))
    + "-old tail\n"
    "+new tail\n"
)
FOLD_ROW = 5
ADDED_ROW = 10


def make_thread(thread_id: str = "thread-1", line: int = 11) -> Thread:
    return Thread(
        id=thread_id,
        file="app.py",
        line_start=line,
        line_end=line,
        comments=(Comment(author="user", text="check this"),),
    )


class TestDiffweaveTextualApp(unittest.TestCase):
    def test_mount_fills_table_and_starts_on_first_navigable_row(self):
        app = DiffweaveTextualApp(DIFF, source_label="change.diff")

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                table = app.query_one("#rows", DataTable)
                self.assertEqual(table.row_count, len(app.view.rows))
                self.assertEqual(app.cursor, 2)

        asyncio.run(_run())

    def test_j_and_k_step_over_navigable_rows(self):
        app = DiffweaveTextualApp(DIFF)

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.press("j")
                await pilot.press("j")
                await pilot.pause()
                self.assertEqual(app.cursor, 4)
                await pilot.press("k")
                await pilot.pause()
                self.assertEqual(app.cursor, 3)
                app.action_last_row()
                self.assertEqual(app.cursor, ADDED_ROW)
                app.action_first_row()
                self.assertEqual(app.cursor, 2)

        asyncio.run(_run())

    def test_half_page_moves_clamp_to_ends(self):
        app = DiffweaveTextualApp(DIFF)

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                app.action_half_page_down()
                self.assertEqual(app.cursor, ADDED_ROW)
                app.action_half_page_up()
                self.assertEqual(app.cursor, 2)

        asyncio.run(_run())

    def test_enter_on_fold_expands_it(self):
        app = DiffweaveTextualApp(DIFF)

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                app._move_cursor(FOLD_ROW)
                await pilot.press("enter")
                await pilot.pause()
                self.assertIn("app.py:4", app.state.expanded_ids)
                self.assertFalse(any(isinstance(row, CollapsedRun) for row in app.view.rows))

                app.action_collapse_all()
                self.assertEqual(app.state.expanded_ids, frozenset())
                self.assertIsInstance(app.view.rows[FOLD_ROW], CollapsedRun)

        asyncio.run(_run())

    def test_collapse_all_folds_run_holding_a_thread(self):
        app = DiffweaveTextualApp(DIFF, [make_thread("hidden", line=5)])

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                self.assertIn("hidden", app.view.thread_row_index)
                await pilot.press("z")
                await pilot.pause()
                self.assertIsInstance(app.view.rows[FOLD_ROW], CollapsedRun)
                self.assertNotIn("hidden", app.view.thread_row_index)

                app._move_cursor(FOLD_ROW)
                await pilot.press("enter")
                await pilot.pause()
                self.assertIn("hidden", app.view.thread_row_index)

        asyncio.run(_run())

    def test_select_extend_and_add_thread(self):
        app = DiffweaveTextualApp(DIFF, author="alice")

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                app._move_cursor(ADDED_ROW)
                app.action_activate()
                self.assertEqual(app.state.selection, Selection("app.py", 11, 11))
                self.assertTrue(any(isinstance(row, CommentEditor) for row in app.view.rows))

                app._move_cursor(8)
                app.action_extend_selection()
                self.assertEqual(app.state.selection, Selection("app.py", 10, 11))

                thread = app.add_thread(app.state.selection, "Needs a test")
                self.assertIsNone(app.state.selection)
                self.assertEqual(thread.comments[0].author, "alice")
                self.assertIn(thread.id, app.view.thread_row_index)
                self.assertFalse(any(isinstance(row, CommentEditor) for row in app.view.rows))

        asyncio.run(_run())

    def test_comment_modal_adds_thread(self):
        app = DiffweaveTextualApp(DIFF)

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                app._move_cursor(ADDED_ROW)
                app.action_activate()
                await pilot.press("m")
                await pilot.pause()
                await pilot.press("o", "k")
                await pilot.press("enter")
                await pilot.pause()
                self.assertEqual(len(app.threads), 1)
                self.assertEqual(app.threads[0].comments[0].text, "ok")
                self.assertEqual((app.threads[0].line_start, app.threads[0].line_end), (11, 11))

        asyncio.run(_run())

    def test_clear_selection(self):
        app = DiffweaveTextualApp(DIFF)

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                app._move_cursor(ADDED_ROW)
                app.action_activate()
                app.action_clear_selection()
                self.assertIsNone(app.state.selection)

        asyncio.run(_run())

    def test_x_toggles_thread_status(self):
        app = DiffweaveTextualApp(DIFF, [make_thread()])

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                thread_at = app.view.thread_row_index["thread-1"]
                self.assertIsInstance(app.view.rows[thread_at], ThreadRow)
                app._move_cursor(thread_at)
                await pilot.press("x")
                await pilot.pause()
                self.assertEqual(app.threads[0].status, "resolved")
                await pilot.press("x")
                await pilot.pause()
                self.assertEqual(app.threads[0].status, "open")

        asyncio.run(_run())

    def test_reply_appends_comment(self):
        app = DiffweaveTextualApp(DIFF, [make_thread()], author="bob")

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                app.add_reply("thread-1", "Done")
                self.assertEqual([comment.text for comment in app.threads[0].comments], ["check this", "Done"])
                self.assertEqual(app.threads[0].comments[-1].author, "bob")

        asyncio.run(_run())

    def test_thread_inside_fold_is_expanded_on_mount(self):
        app = DiffweaveTextualApp(DIFF, [make_thread("hidden", line=5)])

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                self.assertIn("hidden", app.view.thread_row_index)

        asyncio.run(_run())

    def test_without_expanding_anchored_runs_thread_stays_hidden(self):
        app = DiffweaveTextualApp(DIFF, [make_thread("hidden", line=5)], expand_anchored=False)

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                self.assertNotIn("hidden", app.view.thread_row_index)

        asyncio.run(_run())


if __name__ == "__main__":
    unittest.main()
