"""Tests for the CaptureController state machine."""

import asyncio
import io

import pytest
from PIL import Image

from ingredient_lens.common import CameraConfig
from ingredient_lens.vision import (
    CameraPermissionError,
    CameraUnavailableError,
    CaptureController,
    CaptureState,
)
from ingredient_lens.vision.capture_controller import CAMERA_MESSAGES
from tests.fakes import FakeCamera


def make_controller(camera, secure=True, **config) -> CaptureController:
    return CaptureController(camera, CameraConfig(**config), secure_context=lambda: secure, log_dir=None)


def started(controller) -> CaptureController:
    asyncio.run(controller.start())
    return controller


class TestStart:

    def test_idle_to_streaming_with_preferred_config(self, camera):
        controller = make_controller(camera, camera_index=2, resolution=(1280, 720))
        assert controller.state == CaptureState.IDLE

        assert asyncio.run(controller.start()) is True

        assert controller.state == CaptureState.STREAMING
        assert len(camera.requests) == 1
        request = camera.requests[0]
        assert request.index == 2
        assert request.facing_mode == "environment"
        assert (request.width, request.height) == (1280, 720)

    def test_falls_back_to_any_camera(self):
        camera = FakeCamera(errors=[CameraUnavailableError("rear camera busy")])
        controller = started(make_controller(camera))

        assert controller.state == CaptureState.STREAMING
        assert len(camera.requests) == 2
        assert camera.requests[1].is_minimal

    def test_both_configs_fail(self):
        camera = FakeCamera(errors=[CameraUnavailableError("no"), CameraUnavailableError("none")])
        controller = started(make_controller(camera))

        assert controller.state == CaptureState.ERROR
        assert controller.error_message == CAMERA_MESSAGES["unavailable"]
        assert not controller.has_stream

    def test_permission_denied_does_not_fall_back(self):
        camera = FakeCamera(errors=[CameraPermissionError("NotAllowedError")])
        controller = started(make_controller(camera))

        assert controller.state == CaptureState.ERROR
        assert controller.error_message == CAMERA_MESSAGES["permission"]
        assert len(camera.requests) == 1

    def test_insecure_context_never_touches_device(self, camera):
        controller = started(make_controller(camera, secure=False))

        assert controller.state == CaptureState.ERROR
        assert controller.error_message == CAMERA_MESSAGES["insecure"]
        assert camera.requests == []

    def test_feed_never_plays(self):
        camera = FakeCamera(ready=False)
        controller = started(make_controller(camera))

        assert controller.state == CaptureState.ERROR
        assert controller.error_message == CAMERA_MESSAGES["not_playing"]
        assert camera.streams[0].stopped

    def test_unexpected_device_failure_lands_in_error(self):
        camera = FakeCamera(errors=[RuntimeError("driver crashed")])
        controller = started(make_controller(camera))
        assert controller.state == CaptureState.ERROR

    def test_retry_from_error(self):
        camera = FakeCamera(errors=[CameraPermissionError("denied")])
        controller = started(make_controller(camera))
        assert controller.state == CaptureState.ERROR

        asyncio.run(controller.start())

        assert controller.state == CaptureState.STREAMING
        assert controller.error_message is None

    def test_start_while_streaming_keeps_single_stream(self, camera):
        controller = started(make_controller(camera))
        asyncio.run(controller.start())

        assert len(camera.streams) == 1
        assert len(camera.active_streams) == 1

    def test_duplicate_start_while_starting_is_ignored(self):
        gate = asyncio.Event()
        camera = FakeCamera(gate=gate)
        controller = make_controller(camera)

        async def run():
            first = asyncio.ensure_future(controller.start())
            await asyncio.sleep(0)
            second = await controller.start()
            gate.set()
            return await first, second

        first, second = asyncio.run(run())

        assert (first, second) == (True, False)
        assert len(camera.requests) == 1


class TestCapture:

    def test_capture_returns_jpeg_and_releases_stream(self, camera):
        controller = started(make_controller(camera, max_image_edge=640, image_quality=0.7))

        image = controller.capture()

        assert image is not None
        decoded = Image.open(io.BytesIO(image))
        assert decoded.format == "JPEG"
        assert max(decoded.size) == 640
        assert controller.state == CaptureState.CAPTURED
        assert camera.streams[0].stopped
        assert not controller.has_stream

    def test_second_capture_is_noop(self, camera):
        controller = started(make_controller(camera))

        assert controller.capture() is not None
        assert controller.capture() is None
        assert controller.state == CaptureState.CAPTURED

    @pytest.mark.parametrize("state_setup", ["idle", "error"])
    def test_capture_outside_streaming_is_noop(self, state_setup):
        if state_setup == "idle":
            controller = make_controller(FakeCamera())
        else:
            controller = started(make_controller(FakeCamera(), secure=False))

        assert controller.capture() is None
        assert controller.state != CaptureState.CAPTURED

    def test_zero_dimensions_is_noop(self):
        camera = FakeCamera(size=(0, 0))
        controller = started(make_controller(camera))

        assert controller.capture() is None
        assert controller.state == CaptureState.STREAMING

    def test_in_flight_is_noop(self, camera):
        controller = started(make_controller(camera))
        controller.in_flight = True

        assert controller.capture() is None
        assert controller.state == CaptureState.STREAMING

        controller.in_flight = False
        assert controller.capture() is not None

    def test_captured_to_starting_reacquires(self, camera):
        controller = started(make_controller(camera))
        controller.capture()

        asyncio.run(controller.start())

        assert controller.state == CaptureState.STREAMING
        assert len(camera.streams) == 2
        assert camera.active_streams == [camera.streams[1]]


class TestRelease:

    @pytest.mark.parametrize("capture_first", [False, True])
    def test_release_stops_everything(self, camera, capture_first):
        controller = started(make_controller(camera))
        if capture_first:
            controller.capture()

        controller.release()

        assert controller.state == CaptureState.IDLE
        assert camera.active_streams == []

    def test_release_during_start_discards_late_stream(self):
        gate = asyncio.Event()
        camera = FakeCamera(gate=gate)
        controller = make_controller(camera)

        async def run():
            task = asyncio.ensure_future(controller.start())
            await asyncio.sleep(0)
            assert controller.state == CaptureState.STARTING
            controller.release()
            gate.set()
            return await task

        assert asyncio.run(run()) is False
        assert controller.state == CaptureState.IDLE
        assert camera.active_streams == []


class TestNotifications:

    def test_state_and_flash_events(self, camera):
        controller = make_controller(camera)
        events = []
        controller.subscribe(lambda event, ctrl: events.append((event, ctrl.state)))

        asyncio.run(controller.start())
        controller.capture()

        assert events == [
            ("state", CaptureState.STARTING),
            ("state", CaptureState.STREAMING),
            ("flash", CaptureState.STREAMING),
            ("state", CaptureState.CAPTURED),
        ]

    def test_failing_listener_does_not_break_state_machine(self, camera):
        controller = make_controller(camera)

        def broken(event, ctrl):
            raise RuntimeError("render failed")

        controller.subscribe(broken)
        asyncio.run(controller.start())
        assert controller.state == CaptureState.STREAMING

    def test_unsubscribe(self, camera):
        controller = make_controller(camera)
        events = []
        unsubscribe = controller.subscribe(lambda event, ctrl: events.append(event))
        unsubscribe()

        asyncio.run(controller.start())
        assert events == []
