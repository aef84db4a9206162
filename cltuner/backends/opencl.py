"""This module contains all OpenCL specific cltuner functions."""
import numpy as np

from cltuner.backends.backend import Backend
from cltuner.observers.opencl import OpenCLObserver

# embedded in try block to be able to generate documentation
try:
    import pyopencl as cl
except ImportError:
    cl = None


class OpenCLFunctions(Backend):
    """Class that groups the OpenCL functions and maintains some state about the device."""

    def __init__(self, device=0, platform=0, compiler_options=None, observers=None):
        """Creates OpenCL device context and reads device properties.

        :param device: The ID of the OpenCL device to use for benchmarking
        :type device: int

        :param platform: The ID of the OpenCL platform the device belongs to
        :type platform: int

        :param compiler_options: Options passed to the OpenCL compiler for every kernel.
        :type compiler_options: list(string)
        """
        if not cl:
            raise ImportError("pyopencl not installed, install using 'pip install pyopencl'")

        # setup context and queue
        platforms = cl.get_platforms()
        self.ctx = cl.Context(devices=[platforms[platform].get_devices()[device]])

        self.queue = cl.CommandQueue(self.ctx, properties=cl.command_queue_properties.PROFILING_ENABLE)
        self.mf = cl.mem_flags
        # inspect device properties
        self.max_threads = self.ctx.devices[0].get_info(cl.device_info.MAX_WORK_GROUP_SIZE)
        self.compiler_options = compiler_options or []

        # observer stuff
        self.observers = list(observers or [])
        self.observers.append(OpenCLObserver(self))
        self.event = None
        for obs in self.observers:
            obs.register_device(self)

        # collect environment information
        dev = self.ctx.devices[0]
        env = dict()
        env["platform_name"] = dev.platform.name
        env["platform_version"] = dev.platform.version
        env["device_name"] = dev.name
        env["device_version"] = dev.version
        env["opencl_c_version"] = dev.opencl_c_version
        env["driver_version"] = dev.driver_version
        env["compiler_options"] = compiler_options
        self.env = env
        self.name = dev.name

    def ready_argument_list(self, arguments):
        """Ready argument list to be passed to the kernel, allocates gpu mem.

        :param arguments: List of arguments to be passed to the kernel.
            The order should match the argument list on the OpenCL kernel.
            Allowed values are numpy.ndarray, and/or numpy.int32, numpy.float32, and so on.
        :type arguments: list(numpy objects)

        :returns: A list of arguments that can be passed to an OpenCL kernel.
        :rtype: list( pyopencl.Buffer, numpy.int32, ... )
        """
        gpu_args = []
        for arg in arguments:
            # if arg i is a numpy array copy to device
            if isinstance(arg, np.ndarray):
                gpu_args.append(cl.Buffer(self.ctx, self.mf.READ_WRITE | self.mf.COPY_HOST_PTR, hostbuf=arg))
            # if not an array, just pass argument along
            else:
                gpu_args.append(arg)
        return gpu_args

    def compile(self, kernel_instance):
        """Call the OpenCL compiler to compile the kernel, return the device function.

        :param kernel_instance: The kernel instance holding the name and the rendered
            source code of the kernel.
        :type kernel_instance: cltuner.core.KernelInstance

        :returns: An OpenCL kernel that can be called directly.
        :rtype: pyopencl.Kernel
        """
        prg = cl.Program(self.ctx, kernel_instance.kernel_string).build(options=self.compiler_options)
        func = getattr(prg, kernel_instance.name)
        return func

    def start_event(self):
        """Records the event that marks the start of a measurement.

        In OpenCL the event is created when the kernel is launched
        """
        pass

    def stop_event(self):
        """Records the event that marks the end of a measurement.

        In OpenCL the event is created when the kernel is launched
        """
        pass

    def kernel_finished(self):
        """Returns True if the kernel has finished, False otherwise."""
        return self.event.get_info(cl.event_info.COMMAND_EXECUTION_STATUS) == 0

    def synchronize(self):
        """Halts execution until device has finished its tasks."""
        self.queue.finish()

    def run_kernel(self, func, gpu_args, global_size, local_size):
        """Runs the OpenCL kernel passed as 'func'.

        :param func: An OpenCL Kernel
        :type func: pyopencl.Kernel

        :param gpu_args: A list of arguments to the kernel, order should match the
            order in the code. Allowed values are either variables in global memory
            or single values passed by value.
        :type gpu_args: list( pyopencl.Buffer, numpy.int32, ...)

        :param global_size: The total number of work items in each dimension of the NDRange.
        :type global_size: tuple(int)

        :param local_size: The number of work items in each dimension of the work group.
        :type local_size: tuple(int)
        """
        self.event = func(self.queue, global_size, local_size, *gpu_args)

    def memcpy_dtoh(self, dest, src):
        """Perform a device to host memory copy.

        :param dest: A numpy array in host memory to store the data
        :type dest: numpy.ndarray

        :param src: An OpenCL Buffer to copy data from
        :type src: pyopencl.Buffer
        """
        if isinstance(src, cl.Buffer):
            cl.enqueue_copy(self.queue, dest, src)

    def memcpy_htod(self, dest, src):
        """Perform a host to device memory copy.

        :param dest: An OpenCL Buffer to copy data to
        :type dest: pyopencl.Buffer

        :param src: A numpy array in host memory to copy data from
        :type src: numpy.ndarray
        """
        if isinstance(dest, cl.Buffer):
            cl.enqueue_copy(self.queue, dest, src)

    units = {"time": "ms"}
