from .observer import BenchmarkObserver, HostTimeObserver
