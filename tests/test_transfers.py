#!/usr/bin/env python3
"""
Tests for live transfer tracking:
- progress events are applied last-write-wins, clamped, and keyed per kind
- finished tasks linger for the grace period, failed ones until dismissed
- the listing refreshes once after the last upload completes
- start rejections, runtime failures and retries
"""

import unittest

from fakes import DeferredRunner, ManualScheduler, QtTestCase, StubPrompts, entry

from pancloud.errors import NotAuthenticatedError, TransferRuntimeError, TransferStartError
from pancloud.models import Phase, ProgressEvent, TransferKind
from pancloud.transfers import TransferTracker

DOWNLOAD = TransferKind.DOWNLOAD
UPLOAD = TransferKind.UPLOAD


class TransferTestCase(QtTestCase):
    def setUp(self):
        self.backend = self.new_backend()
        self.backend.listings = {0: [entry(9, "movie.mkv"), entry(5, "docs", directory=True)], 5: []}
        self.prompts = StubPrompts()
        self.scheduler = ManualScheduler()
        self.controller = self.new_controller(self.backend, self.prompts, scheduler=self.scheduler)
        self.controller.login("user", "pw")
        self.backend.list_calls.clear()
        self.errors = self.record(self.controller.error_raised)


class TestProgressEvents(TransferTestCase):
    def test_out_of_order_progress_converges_on_phase(self):
        self.controller.download(entry(9, "movie.mkv"), "/tmp/movie.mkv")
        self.backend.progress(DOWNLOAD, 9, 50, Phase.IN_PROGRESS)
        self.backend.progress(DOWNLOAD, 9, 30, Phase.IN_PROGRESS)
        self.assertEqual(self.controller.transfer(DOWNLOAD, 9).progress, 30)
        self.backend.progress(DOWNLOAD, 9, 100, Phase.FINISHED)
        task = self.controller.transfer(DOWNLOAD, 9)
        self.assertEqual(task.phase, Phase.FINISHED)
        self.assertEqual(task.progress, 100)

    def test_progress_is_clamped(self):
        self.backend.progress(DOWNLOAD, 9, 150, Phase.IN_PROGRESS)
        self.assertEqual(self.controller.transfer(DOWNLOAD, 9).progress, 100)
        self.backend.progress(DOWNLOAD, 9, -5, Phase.IN_PROGRESS)
        self.assertEqual(self.controller.transfer(DOWNLOAD, 9).progress, 0)

    def test_unknown_key_creates_entry(self):
        self.backend.progress(UPLOAD, "/home/u/notes.txt", 10, Phase.IN_PROGRESS)
        task = self.controller.transfer(UPLOAD, "/home/u/notes.txt")
        self.assertIsNotNone(task)
        self.assertEqual(task.display_name, "notes.txt")
        self.assertEqual(task.progress, 10)

    def test_keys_are_isolated(self):
        self.backend.progress(DOWNLOAD, 1, 10, Phase.IN_PROGRESS)
        self.backend.progress(DOWNLOAD, 2, 80, Phase.IN_PROGRESS)
        self.backend.progress(UPLOAD, "1", 55, Phase.IN_PROGRESS)
        self.assertEqual(self.controller.transfer(DOWNLOAD, 1).progress, 10)
        self.assertEqual(self.controller.transfer(DOWNLOAD, 2).progress, 80)
        self.assertEqual(self.controller.transfer(UPLOAD, "1").progress, 55)
        self.assertEqual(len(self.controller.transfers(DOWNLOAD)), 2)
        self.assertEqual(len(self.controller.transfers(UPLOAD)), 1)

    def test_transfers_changed_emitted_per_event(self):
        changes = self.record(self.controller.transfers_changed)
        self.backend.progress(DOWNLOAD, 1, 10, Phase.IN_PROGRESS)
        self.backend.progress(DOWNLOAD, 1, 20, Phase.IN_PROGRESS)
        self.assertEqual(len(changes.calls), 2)

    def test_closed_controller_stops_listening(self):
        self.controller.close()
        self.backend.progress(DOWNLOAD, 1, 10, Phase.IN_PROGRESS)
        self.assertIsNone(self.controller.transfer(DOWNLOAD, 1))


class TestGracePeriod(TransferTestCase):
    def test_finished_task_removed_after_grace(self):
        self.backend.progress(DOWNLOAD, 9, 100, Phase.FINISHED)
        self.scheduler.advance(1.9)
        self.assertIsNotNone(self.controller.transfer(DOWNLOAD, 9))
        self.scheduler.advance(0.1)
        self.assertIsNone(self.controller.transfer(DOWNLOAD, 9))

    def test_rearmed_task_survives_grace(self):
        self.backend.progress(DOWNLOAD, 9, 100, Phase.FINISHED)
        self.scheduler.advance(1.0)
        self.backend.progress(DOWNLOAD, 9, 40, Phase.IN_PROGRESS)
        self.assertEqual(self.scheduler.pending, 0)
        self.scheduler.advance(5.0)
        task = self.controller.transfer(DOWNLOAD, 9)
        self.assertEqual(task.phase, Phase.IN_PROGRESS)

        self.backend.progress(DOWNLOAD, 9, 100, Phase.FINISHED)
        self.scheduler.advance(2.0)
        self.assertIsNone(self.controller.transfer(DOWNLOAD, 9))

    def test_repeated_finished_events_keep_one_timer(self):
        self.backend.progress(DOWNLOAD, 9, 100, Phase.FINISHED)
        self.backend.progress(DOWNLOAD, 9, 100, Phase.FINISHED)
        self.assertEqual(self.scheduler.pending, 1)

    def test_failed_task_retained_until_navigation(self):
        self.backend.progress(DOWNLOAD, 9, 20, Phase.FAILED)
        self.scheduler.advance(60.0)
        task = self.controller.transfer(DOWNLOAD, 9)
        self.assertEqual(task.phase, Phase.FAILED)
        self.controller.enter(5)
        self.assertIsNone(self.controller.transfer(DOWNLOAD, 9))

    def test_dismiss_only_terminal_tasks(self):
        self.backend.progress(DOWNLOAD, 9, 20, Phase.IN_PROGRESS)
        self.assertFalse(self.controller.dismiss_transfer(DOWNLOAD, 9))
        self.backend.progress(DOWNLOAD, 9, 20, Phase.FAILED)
        self.assertTrue(self.controller.dismiss_transfer(DOWNLOAD, 9))
        self.assertEqual(self.controller.transfers(), ())


class TestUploadRefresh(TransferTestCase):
    def test_upload_lifecycle_refreshes_once(self):
        self.assertTrue(self.controller.upload("/tmp/report.pdf"))
        self.assertEqual(self.backend.uploads[0].parent_directory_id, 0)
        task = self.controller.transfer(UPLOAD, "/tmp/report.pdf")
        self.assertEqual(task.display_name, "report.pdf")
        self.assertEqual(task.phase, Phase.STARTING)

        seen = []
        for percent, phase in ((0, Phase.HASHING), (40, Phase.IN_PROGRESS), (100, Phase.FINISHED)):
            self.backend.progress(UPLOAD, "/tmp/report.pdf", percent, phase)
            seen.append(self.controller.transfer(UPLOAD, "/tmp/report.pdf").phase)
        self.assertEqual(seen, [Phase.HASHING, Phase.IN_PROGRESS, Phase.FINISHED])
        self.assertEqual(self.backend.list_calls, [])

        self.scheduler.advance(2.0)
        self.assertIsNone(self.controller.transfer(UPLOAD, "/tmp/report.pdf"))
        self.assertEqual(self.backend.list_calls, [0])

    def test_refresh_waits_for_every_upload(self):
        self.controller.upload("/tmp/a.bin")
        self.controller.upload("/tmp/b.bin")
        self.backend.progress(UPLOAD, "/tmp/a.bin", 100, Phase.FINISHED)
        self.scheduler.advance(2.0)
        self.assertEqual(self.backend.list_calls, [])
        self.backend.progress(UPLOAD, "/tmp/b.bin", 100, Phase.FINISHED)
        self.scheduler.advance(2.0)
        self.assertEqual(self.backend.list_calls, [0])

    def test_upload_into_prompted_file(self):
        self.prompts.open_path = "C:\\Users\\u\\scan.png"
        self.assertTrue(self.controller.upload())
        self.assertEqual(self.controller.transfer(UPLOAD, "C:\\Users\\u\\scan.png").display_name, "scan.png")

    def test_cancelled_prompt_starts_nothing(self):
        self.assertFalse(self.controller.upload())
        self.assertFalse(self.controller.download(entry(9, "movie.mkv")))
        self.assertEqual(self.backend.uploads, [])
        self.assertEqual(self.backend.downloads, [])
        self.assertEqual(self.controller.transfers(), ())

    def test_no_refresh_after_logout(self):
        self.controller.upload("/tmp/a.bin")
        self.controller.logout()
        self.backend.progress(UPLOAD, "/tmp/a.bin", 100, Phase.FINISHED)
        self.scheduler.advance(2.0)
        self.assertEqual(self.backend.list_calls, [])

    def test_transfers_require_login(self):
        self.controller.logout()
        with self.assertRaises(NotAuthenticatedError):
            self.controller.upload("/tmp/a.bin")


class TestFailures(TransferTestCase):
    def test_start_rejection_removes_entry(self):
        self.backend.upload_error = TransferStartError("file not readable")
        self.assertTrue(self.controller.upload("/tmp/missing.bin"))
        self.assertIsNone(self.controller.transfer(UPLOAD, "/tmp/missing.bin"))
        self.assertIsInstance(self.errors.values[-1], TransferStartError)

    def test_generic_error_before_progress_counts_as_rejection(self):
        self.backend.download_error = PermissionError("read-only destination")
        self.controller.download(entry(9, "movie.mkv"), "/ro/movie.mkv")
        self.assertIsNone(self.controller.transfer(DOWNLOAD, 9))
        self.assertIsInstance(self.errors.values[-1], TransferStartError)

    def test_runtime_failure_marks_failed(self):
        def hook(request):
            self.backend.progress(DOWNLOAD, request.file_id, 40, Phase.IN_PROGRESS)

        self.backend.download_hook = hook
        self.backend.download_error = TransferRuntimeError(9, "connection reset")
        self.controller.download(entry(9, "movie.mkv"), "/tmp/movie.mkv")
        task = self.controller.transfer(DOWNLOAD, 9)
        self.assertEqual(task.phase, Phase.FAILED)
        self.assertEqual(task.progress, 40)
        self.assertIn("connection reset", task.error)
        self.assertIsInstance(self.errors.values[-1], TransferRuntimeError)

    def test_collision_with_live_task_is_rejected(self):
        self.assertTrue(self.controller.download(entry(9, "movie.mkv"), "/tmp/movie.mkv"))
        self.assertFalse(self.controller.download(entry(9, "movie.mkv"), "/tmp/other.mkv"))
        self.assertEqual(len(self.backend.downloads), 1)
        self.assertIsInstance(self.errors.values[-1], TransferStartError)

    def test_retry_after_failure_replaces_entry(self):
        self.controller.download(entry(9, "movie.mkv"), "/tmp/movie.mkv")
        self.backend.progress(DOWNLOAD, 9, 30, Phase.FAILED)
        self.assertTrue(self.controller.download(entry(9, "movie.mkv"), "/tmp/movie.mkv"))
        task = self.controller.transfer(DOWNLOAD, 9)
        self.assertEqual(task.phase, Phase.STARTING)
        self.assertEqual(task.progress, 0)
        self.assertEqual(len(self.backend.downloads), 2)

    def test_error_from_superseded_attempt_keeps_new_entry(self):
        runner = DeferredRunner()
        controller = self.new_controller(self.backend, self.prompts, runner=runner, scheduler=ManualScheduler())
        errors = self.record(controller.error_raised)
        controller.login("user", "pw")
        runner.complete_all()

        controller.download(entry(9, "movie.mkv"), "/tmp/movie.mkv")
        self.backend.progress(DOWNLOAD, 9, 30, Phase.FAILED)
        controller.download(entry(9, "movie.mkv"), "/tmp/movie.mkv")
        self.backend.download_error = TransferStartError("first attempt refused")
        runner.complete(0)

        task = controller.transfer(DOWNLOAD, 9)
        self.assertIsNotNone(task)
        self.assertEqual(task.phase, Phase.STARTING)
        self.assertIsInstance(errors.values[-1], TransferStartError)



class TestAttemptBookkeeping(QtTestCase):
    def setUp(self):
        self.backend = self.new_backend()
        self.runner = DeferredRunner()
        self.scheduler = ManualScheduler()
        self.errors = []
        self.tracker = TransferTracker(self.backend, self.runner, self.scheduler)

    def test_forgotten_after_finished_task_expires(self):
        self.tracker.start_download(entry(9, "movie.mkv"), "/tmp/movie.mkv", self.errors.append)
        self.runner.complete()
        self.assertIn((DOWNLOAD, 9), self.tracker._attempts)
        self.tracker.apply(ProgressEvent(DOWNLOAD, 9, 100, Phase.FINISHED))
        self.scheduler.advance(2.0)
        self.assertEqual(self.tracker._attempts, {})
        self.assertEqual(self.tracker._pending, {})

    def test_forgotten_after_rejection(self):
        self.backend.upload_error = TransferStartError("file not readable")
        for _ in range(3):
            self.tracker.start_upload("/tmp/missing.bin", 0, self.errors.append)
            self.runner.complete()
        self.assertEqual(len(self.errors), 3)
        self.assertEqual(self.tracker._attempts, {})
        self.assertEqual(self.tracker._pending, {})

    def test_kept_while_worker_still_running(self):
        self.tracker.start_download(entry(9, "movie.mkv"), "/tmp/movie.mkv", self.errors.append)
        self.tracker.apply(ProgressEvent(DOWNLOAD, 9, 30, Phase.FAILED))
        self.assertTrue(self.tracker.dismiss(DOWNLOAD, 9))
        self.assertEqual(self.tracker._attempts, {(DOWNLOAD, 9): 1})

        self.tracker.start_download(entry(9, "movie.mkv"), "/tmp/movie.mkv", self.errors.append)
        self.backend.download_error = TransferRuntimeError(9, "connection reset")
        self.runner.complete(0)
        self.assertEqual(self.tracker.get(DOWNLOAD, 9).phase, Phase.STARTING)
        self.assertEqual(self.tracker._attempts, {(DOWNLOAD, 9): 2})

        self.backend.download_error = None
        self.runner.complete(0)
        self.tracker.dismiss_failed()
        self.tracker.apply(ProgressEvent(DOWNLOAD, 9, 100, Phase.FINISHED))
        self.scheduler.advance(2.0)
        self.assertEqual(self.tracker._attempts, {})

if __name__ == '__main__':
    unittest.main()
