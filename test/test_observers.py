import pytest

from cltuner.observers.observer import BenchmarkObserver, HostTimeObserver


def test_host_time_observer():
    observer = HostTimeObserver()
    for _ in range(3):
        observer.before_start()
        observer.after_start()
        observer.after_finish()
    results = observer.get_results()
    assert len(results["times"]) == 3
    assert all(t >= 0 for t in results["times"])
    # results are only reported once
    assert observer.get_results() == {"times": []}


def test_benchmark_observer_is_abstract():
    with pytest.raises(TypeError):
        BenchmarkObserver()

    class NameObserver(BenchmarkObserver):
        def get_results(self):
            return {"name": self.dev.name}

    class Dev:
        name = "FakeDevice"

    observer = NameObserver()
    observer.register_device(Dev())
    observer.register_configuration(dict(A=1))
    assert observer.get_results() == {"name": "FakeDevice"}
