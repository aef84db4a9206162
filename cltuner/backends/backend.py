"""This module contains the interface of all cltuner backends"""
from abc import ABC, abstractmethod


class Backend(ABC):
    """Base class for cltuner backends

    A backend owns one device execution context. Besides the methods below it is expected
    to provide the attributes ``name``, ``max_threads``, ``env``, ``units`` and ``observers``.
    """

    @abstractmethod
    def ready_argument_list(self, arguments):
        """This method must implement the allocation of the arguments on device memory."""
        pass

    @abstractmethod
    def compile(self, kernel_instance):
        """This method must implement the compilation of a kernel into a callable function."""
        pass

    @abstractmethod
    def start_event(self):
        """This method must implement the recording of the start of a measurement."""
        pass

    @abstractmethod
    def stop_event(self):
        """This method must implement the recording of the end of a measurement."""
        pass

    @abstractmethod
    def kernel_finished(self):
        """This method must implement a check that returns True if the kernel has finished, False otherwise."""
        pass

    @abstractmethod
    def synchronize(self):
        """This method must implement a barrier that halts execution until device has finished its tasks."""
        pass

    @abstractmethod
    def run_kernel(self, func, gpu_args, global_size, local_size):
        """This method must implement the execution of the kernel on the device."""
        pass

    @abstractmethod
    def memcpy_dtoh(self, dest, src):
        """This method must implement a device to host copy."""
        pass

    @abstractmethod
    def memcpy_htod(self, dest, src):
        """This method must implement a host to device copy."""
        pass
