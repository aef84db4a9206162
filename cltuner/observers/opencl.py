from cltuner.observers.observer import BenchmarkObserver


class OpenCLObserver(BenchmarkObserver):
    """Observer that measures time using OpenCL profiling events during benchmarking"""

    def __init__(self, dev):
        self.dev = dev
        self.times = []

    def after_finish(self):
        event = self.dev.event
        # Time is converted to milliseconds
        self.times.append((event.profile.end - event.profile.start) * 1e-6)

    def get_results(self):
        results = {"times": self.times.copy()}
        self.times = []
        return results
