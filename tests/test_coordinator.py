"""
Tests for the processing coordinator.

Tests cover:
- Submission preconditions
- Buffer transfer on submit
- Response correlation by job id
- Timeout, cancellation, reset and loss of the worker
"""

import unittest

from OE_Libs.errors import (
    BackendNotReady,
    BufferDetachedError,
    DimensionMismatch,
    JobInFlight,
)
from OE_Libs.MaskingLib.pixel_buffers import PixelBuffer
from OE_Libs.ProcessingLib.backend_lifecycle import BackendLifecycle
from OE_Libs.ProcessingLib.coordinator import JobState, ProcessingCoordinator
from OE_Libs.ProcessingLib.messages import Response


class RecordingPost:
    """Stands in for an execution context's post()."""

    def __init__(self):
        self.messages = []
        self.error = None

    def __call__(self, message):
        if self.error is not None:
            raise self.error
        self.messages.append(message)

    def process_messages(self):
        return [m for m in self.messages if m["kind"] == "process"]


def _ready_lifecycle(post):
    lifecycle = BackendLifecycle(post, load_timeout=0)
    lifecycle.request_load()
    lifecycle.handle_response(Response.load_succeeded())
    return lifecycle


class CoordinatorTestCase(unittest.TestCase):

    def setUp(self):
        self.post = RecordingPost()
        self.lifecycle = _ready_lifecycle(self.post)
        self.coordinator = ProcessingCoordinator(self.lifecycle, self.post, job_timeout=0)

    def submit(self, width=4, height=4):
        return self.coordinator.submit(PixelBuffer.blank(width, height), PixelBuffer.blank(width, height))


class TestSubmit(CoordinatorTestCase):
    """Test job submission."""

    def test_submit_posts_request(self):
        handle = self.submit(3, 2)

        requests = self.post.process_messages()
        self.assertEqual(len(requests), 1)
        request = requests[0]
        self.assertEqual(request["job_id"], handle.job_id)
        self.assertEqual((request["width"], request["height"]), (3, 2))
        self.assertEqual(len(request["image_pixels"]), 24)
        self.assertEqual(request["radius"], 3)
        self.assertEqual(request["threshold"], 10)
        self.assertEqual(request["method"], "telea")
        self.assertEqual(handle.state, JobState.RUNNING)
        self.assertTrue(self.coordinator.is_busy)

    def test_submit_detaches_buffers(self):
        image = PixelBuffer.blank(2, 2)
        mask = PixelBuffer.blank(2, 2)
        self.coordinator.submit(image, mask)

        self.assertTrue(image.is_detached)
        self.assertTrue(mask.is_detached)
        with self.assertRaises(BufferDetachedError):
            _ = image.data

    def test_backend_not_ready(self):
        lifecycle = BackendLifecycle(self.post, load_timeout=0)
        coordinator = ProcessingCoordinator(lifecycle, self.post, job_timeout=0)

        with self.assertRaises(BackendNotReady):
            coordinator.submit(PixelBuffer.blank(2, 2), PixelBuffer.blank(2, 2))
        self.assertEqual(self.post.process_messages(), [])

    def test_second_submit_while_running(self):
        first = self.submit()

        with self.assertRaises(JobInFlight) as ctx:
            self.submit()
        self.assertEqual(ctx.exception.job_id, first.job_id)
        self.assertEqual(len(self.post.process_messages()), 1)

        self.coordinator.handle_response(Response.process_succeeded(first.job_id, bytes(64), 4, 4))
        outcome = first.result(timeout=1)
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.result.dims, (4, 4))

    def test_dimension_mismatch_sends_nothing(self):
        image = PixelBuffer.blank(4, 4)
        mask = PixelBuffer.blank(4, 5)

        with self.assertRaises(DimensionMismatch):
            self.coordinator.submit(image, mask)

        self.assertEqual(self.post.process_messages(), [])
        self.assertFalse(image.is_detached)
        self.assertFalse(self.coordinator.is_busy)

    def test_detached_buffer_rejected(self):
        image = PixelBuffer.blank(2, 2)
        image.detach()

        with self.assertRaises(BufferDetachedError):
            self.coordinator.submit(image, PixelBuffer.blank(2, 2))
        self.assertFalse(self.coordinator.is_busy)

    def test_post_failure_resolves_job(self):
        self.post.error = RuntimeError("pipe closed")
        handle = self.submit()

        result = handle.result(timeout=1)
        self.assertFalse(result.success)
        self.assertIn("pipe closed", result.error)
        self.assertFalse(self.coordinator.is_busy)

    def test_job_ids_increase(self):
        first = self.submit()
        self.coordinator.cancel()
        second = self.submit()
        self.assertGreater(second.job_id, first.job_id)


class TestResponses(CoordinatorTestCase):
    """Test applying worker responses."""

    def test_success(self):
        handle = self.submit(2, 1)
        pixels = bytes(range(8))
        self.coordinator.handle_response(Response.process_succeeded(handle.job_id, pixels, 2, 1))

        result = handle.result(timeout=1)
        self.assertTrue(result.success)
        self.assertEqual(result.result.dims, (2, 1))
        self.assertEqual(bytes(result.result.data), pixels)
        self.assertEqual(handle.state, JobState.SUCCEEDED)
        self.assertFalse(self.coordinator.is_busy)

    def test_failure(self):
        handle = self.submit()
        self.coordinator.handle_response(Response.process_failed(handle.job_id, "inpaint exploded"))

        result = handle.result(timeout=1)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "inpaint exploded")
        self.assertEqual(handle.state, JobState.FAILED)

    def test_stale_response_is_discarded(self):
        handle = self.submit()
        self.coordinator.handle_response(
            Response.process_succeeded(handle.job_id + 100, bytes(64), 4, 4)
        )

        self.assertFalse(handle.done())
        self.assertTrue(self.coordinator.is_busy)

    def test_response_with_no_job_is_discarded(self):
        self.coordinator.handle_response(Response.process_succeeded(1, bytes(4), 1, 1))
        self.assertFalse(self.coordinator.is_busy)

    def test_wrong_result_size_fails_job(self):
        handle = self.submit(4, 4)
        self.coordinator.handle_response(Response.process_succeeded(handle.job_id, bytes(16), 2, 2))

        result = handle.result(timeout=1)
        self.assertFalse(result.success)
        self.assertIn("expected 4x4", result.error)

    def test_short_result_buffer_fails_job(self):
        handle = self.submit(4, 4)
        self.coordinator.handle_response(Response.process_succeeded(handle.job_id, bytes(10), 4, 4))

        result = handle.result(timeout=1)
        self.assertFalse(result.success)
        self.assertIn("Invalid result buffer", result.error)

    def test_done_callback(self):
        handle = self.submit(1, 1)
        seen = []
        handle.add_done_callback(seen.append)

        self.coordinator.handle_response(Response.process_succeeded(handle.job_id, bytes(4), 1, 1))

        self.assertEqual(len(seen), 1)
        self.assertTrue(seen[0].success)


class TestAbandonment(CoordinatorTestCase):
    """Test timeout, cancellation, reset and worker loss."""

    def test_timeout(self):
        coordinator = ProcessingCoordinator(self.lifecycle, self.post, job_timeout=0.05)
        handle = coordinator.submit(PixelBuffer.blank(2, 2), PixelBuffer.blank(2, 2))

        result = handle.result(timeout=2)
        self.assertFalse(result.success)
        self.assertIn("timed out", result.error)
        self.assertFalse(coordinator.is_busy)

    def test_cancel(self):
        handle = self.submit()
        self.assertTrue(handle.cancel())

        result = handle.result(timeout=1)
        self.assertFalse(result.success)
        self.assertIn("cancelled", result.error)
        self.assertFalse(self.coordinator.is_busy)

    def test_late_response_after_cancel_is_discarded(self):
        handle = self.submit()
        handle.cancel()
        follow_up = self.submit()

        self.coordinator.handle_response(Response.process_succeeded(handle.job_id, bytes(64), 4, 4))

        self.assertFalse(follow_up.done())
        self.assertEqual(self.coordinator.current_job_id, follow_up.job_id)

    def test_cancel_without_job(self):
        self.assertFalse(self.coordinator.cancel())

    def test_reset(self):
        handle = self.submit()
        self.coordinator.reset()

        self.assertFalse(handle.result(timeout=1).success)
        self.submit()

    def test_context_lost(self):
        handle = self.submit()
        self.coordinator.handle_context_lost("Worker process exited unexpectedly (exit code -9)")

        result = handle.result(timeout=1)
        self.assertFalse(result.success)
        self.assertTrue(result.error.startswith("Processing failed:"))


if __name__ == "__main__":
    unittest.main()
