import numpy as np
import pytest

try:
    from mock import MagicMock, patch
except ImportError:
    from unittest.mock import MagicMock, patch

from cltuner import Tuner
from cltuner.backends import opencl
from cltuner.core import KernelInstance, KernelSource

from .context import skip_if_no_opencl

try:
    import pyopencl
except Exception:
    pass


vector_add = """
__kernel void vector_add(__global float *c, __global const float *a, __global const float *b, int n) {
    int i = get_global_id(0) * WPT;
    for (int w = 0; w < WPT; w++) {
        if (i + w < n) {
            c[i + w] = a[i + w] + b[i + w];
        }
    }
}"""

vector_add_reference = """
__kernel void vector_add(__global float *c, __global const float *a, __global const float *b, int n) {
    int i = get_global_id(0);
    if (i < n) {
        c[i] = a[i] + b[i];
    }
}"""


@skip_if_no_opencl
def test_ready_argument_list():

    size = 1000
    a = np.int32(75)
    b = np.random.randn(size).astype(np.float32)
    c = np.zeros_like(b)

    arguments = [c, a, b]

    dev = opencl.OpenCLFunctions(0)
    gpu_args = dev.ready_argument_list(arguments)

    assert isinstance(gpu_args[0], pyopencl.Buffer)
    assert isinstance(gpu_args[1], np.int32)
    assert isinstance(gpu_args[2], pyopencl.Buffer)

    gpu_args[0].release()
    gpu_args[2].release()


@skip_if_no_opencl
def test_compile():

    original_kernel = """
    __kernel void sum(__global const float *a_g, __global const float *b_g, __global float *res_g) {
        int gid = get_global_id(0);
        __local float test[shared_size];
        test[0] = a_g[gid];
        res_g[gid] = test[0] + b_g[gid];
    }
    """

    kernel_source = KernelSource("sum", original_kernel)
    kernel_string = original_kernel.replace("shared_size", str(1024))
    kernel_instance = KernelInstance("sum", kernel_source, kernel_string, (1,), (1,), dict(), [])

    dev = opencl.OpenCLFunctions(0)
    func = dev.compile(kernel_instance)

    assert isinstance(func, pyopencl.Kernel)


@skip_if_no_opencl
def test_run_kernel():

    local_size = (1, 2, 3)
    global_size = (4, 10, 3)

    def test_func(queue, global_size, local_size, arg):
        assert all(np.array(global_size) == np.array([4, 10, 3]))
        return type('Event', (object,), {'wait': lambda self: 0})()
    dev = opencl.OpenCLFunctions(0)
    dev.run_kernel(test_func, [0], global_size, local_size)


@skip_if_no_opencl
def test_tune_vector_add():
    size = 4096
    a = np.random.randn(size).astype(np.float32)
    b = np.random.randn(size).astype(np.float32)
    c = np.zeros_like(a)

    tuner = Tuner(iterations=3, quiet=True)
    kid = tuner.add_kernel(vector_add, "vector_add", (size,), (1,))
    tuner.add_parameter(kid, "TBX", [32, 64, 128])
    tuner.add_parameter(kid, "WPT", [1, 2, 4])
    tuner.mul_local_size(kid, ["TBX"])
    tuner.div_global_size(kid, ["WPT"])
    tuner.set_reference(vector_add_reference, "vector_add", (size,), (64,))
    tuner.add_argument_output(c)
    tuner.add_argument_input(a)
    tuner.add_argument_input(b)
    tuner.add_argument_scalar(np.int32(size))

    results = tuner.tune()
    assert len(results) == 9
    assert all(r.status == "Success" for r in results)
    assert tuner.print_to_screen() > 0
    assert tuner.get_environment()["device_name"]


@skip_if_no_opencl
def test_compile_error_is_recorded():
    tuner = Tuner(iterations=1, quiet=True)
    kid = tuner.add_kernel("__kernel void broken(__global float *c) { c[0] = undeclared; }", "broken", (64,), (1,))
    tuner.add_parameter(kid, "TBX", [32])
    tuner.mul_local_size(kid, ["TBX"])
    tuner.add_argument_output(np.zeros(64, dtype=np.float32))

    results = tuner.tune()
    assert results[0].status == "CompileFailed"
    assert tuner.print_to_screen() == 0


def test_observers_argument_not_modified():
    observers = []
    with patch.object(opencl, "cl", MagicMock()):
        dev = opencl.OpenCLFunctions(0, observers=observers)
    assert observers == []
    assert len(dev.observers) == 1
    assert isinstance(dev.observers[0], opencl.OpenCLObserver)
