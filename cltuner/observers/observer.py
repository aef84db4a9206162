from abc import ABC, abstractmethod
from time import perf_counter


class BenchmarkObserver(ABC):
    """Base class for Benchmark Observers"""

    def register_device(self, dev):
        """Sets self.dev, for inspection by the observer at various points during benchmarking"""
        self.dev = dev

    def register_configuration(self, params):
        """Called once before benchmarking of a single kernel configuration. The `params` argument is a `dict`
        that stores the configuration parameters."""
        pass

    def before_start(self):
        """before start is called every iteration before the kernel starts"""
        pass

    def after_start(self):
        """after start is called every iteration directly after the kernel was launched"""
        pass

    def after_finish(self):
        """after finish is called once every iteration after the kernel has finished execution"""
        pass

    @abstractmethod
    def get_results(self):
        """get_results should return a dict with results that adds to the benchmarking data

        get_results is called only once per benchmarking of a single kernel configuration and
        should return the list of measured times under the key "times".
        """
        pass


class HostTimeObserver(BenchmarkObserver):
    """Observer that measures wall-clock time on the host, for backends without device timers.

    after_finish is called after the device has been synchronized, so the measured interval
    covers the complete kernel execution.
    """

    def __init__(self):
        self.times = []
        self.t0 = 0

    def before_start(self):
        self.t0 = perf_counter()

    def after_finish(self):
        # Time is converted to milliseconds
        self.times.append(1000 * (perf_counter() - self.t0))

    def get_results(self):
        results = {"times": self.times.copy()}
        self.times = []
        return results
