# tests/test_loop.py
"""
Tests for the warm-up + measured inference loop.
"""
import numpy as np
import pytest
from PIL import Image

from rvmbench.errors import ComputeError, DeviceError, ShapeMismatchError
from rvmbench.loop import InferenceLoop, LoopPhase


class TestScenarios:
    def test_constant_alpha_on_gray_frame(
        self, stub_backends, tiny_profile, gray_buffer, tmp_path
    ):
        """2x2 gray frame, constant 0.5 alpha, unchanged state."""
        backend = stub_backends.Stub()
        output = tmp_path / "out.png"
        loop = InferenceLoop(backend, tiny_profile, gray_buffer, iterations=10, output_path=output)

        report = loop.run()

        assert report.output_path == output
        with Image.open(output) as img:
            assert img.mode == "L"
            assert np.asarray(img).tolist() == [[128, 128], [128, 128]]
        for tensor, shape in zip(loop.state, tiny_profile.recurrent_shapes()):
            assert tensor.shape == shape
            assert tensor.dtype == np.float32
            np.testing.assert_array_equal(tensor, np.zeros(shape, dtype=np.float32))

    def test_warm_up_only(self, stub_backends, tiny_profile, gray_buffer, tmp_path):
        backend = stub_backends.Stub()
        output = tmp_path / "out.png"
        loop = InferenceLoop(backend, tiny_profile, gray_buffer, iterations=0, output_path=output)

        report = loop.run()

        assert backend.forward_calls == 1
        assert report.samples == 0
        assert report.mean_ms is None
        assert report.output_path is None
        assert not output.exists()
        assert loop.phase is LoopPhase.DONE


class TestIterations:
    @pytest.mark.parametrize("iterations", [1, 2, 3, 10])
    def test_warm_up_excluded(self, stub_backends, tiny_profile, gray_buffer, iterations):
        backend = stub_backends.Stub()
        report = InferenceLoop(backend, tiny_profile, gray_buffer, iterations=iterations).run()

        assert backend.forward_calls == iterations + 1
        assert report.samples == iterations

    def test_warm_up_timing_discarded(
        self, stub_backends, tiny_profile, gray_buffer, fake_clock
    ):
        # Warm-up takes 500 ms, measured iterations 3 ms, 4 ms, 5 ms
        backend = stub_backends.Stub(
            clock=fake_clock, step_ns=[500_000_000, 3_000_000, 4_000_000, 5_000_000]
        )
        report = InferenceLoop(backend, tiny_profile, gray_buffer, iterations=3).run()

        assert report.total_ns == 12_000_000
        assert report.mean_ms == 4

    def test_synchronize_inside_timed_region(self, stub_backends, tiny_profile, gray_buffer):
        backend = stub_backends.Stub()
        InferenceLoop(backend, tiny_profile, gray_buffer, iterations=2).run()
        # Entry and exit of every forward call
        assert backend.synced == 2 * 3

    def test_state_threaded_between_iterations(self, stub_backends, small_profile):
        backend = stub_backends.Counting()
        buffer = np.zeros(3 * 10 * 12, dtype=np.float32)
        loop = InferenceLoop(backend, small_profile, buffer, iterations=4)
        loop.run()

        # Iteration i sees the outputs of iteration i - 1
        for i, inputs in enumerate(backend.seen_inputs):
            for tensor in inputs:
                assert np.all(tensor == float(i))
        for tensor in loop.state:
            assert np.all(tensor == 5.0)

    def test_state_shapes_stable(self, stub_backends, small_profile):
        backend = stub_backends.Counting()
        buffer = np.zeros(3 * 10 * 12, dtype=np.float32)
        loop = InferenceLoop(backend, small_profile, buffer, iterations=3)
        loop.run()

        for inputs in backend.seen_inputs:
            assert [t.shape for t in inputs] == small_profile.recurrent_shapes()
        assert loop.state.shapes == small_profile.recurrent_shapes()

    def test_negative_iterations(self, stub_backends, tiny_profile, gray_buffer):
        with pytest.raises(ValueError):
            InferenceLoop(stub_backends.Stub(), tiny_profile, gray_buffer, iterations=-1)


class TestFailures:
    def test_buffer_mismatch_fails_before_running(
        self, stub_backends, small_profile, gray_buffer
    ):
        backend = stub_backends.Stub()
        with pytest.raises(ShapeMismatchError):
            InferenceLoop(backend, small_profile, gray_buffer).run()
        assert backend.forward_calls == 0

    def test_compute_error_closes_backend(self, stub_backends, tiny_profile, gray_buffer, tmp_path):
        backend = stub_backends.Failing()
        output = tmp_path / "out.png"
        with pytest.raises(ComputeError):
            InferenceLoop(backend, tiny_profile, gray_buffer, output_path=output).run()
        assert backend.closed
        assert not output.exists()

    def test_device_error(self, stub_backends, tiny_profile, gray_buffer):
        backend = stub_backends.NoDevice()
        with pytest.raises(DeviceError):
            InferenceLoop(backend, tiny_profile, gray_buffer).run()
        assert backend.forward_calls == 0

    def test_shape_drift(self, stub_backends, tiny_profile, gray_buffer):
        backend = stub_backends.ShapeDrift()
        loop = InferenceLoop(backend, tiny_profile, gray_buffer, iterations=3)
        with pytest.raises(ComputeError, match="changed shape"):
            loop.run()
        assert backend.forward_calls == 1
        assert backend.closed
