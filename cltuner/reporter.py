"""Module that collects the results of a tuning run and reports on them."""

from cltuner import file_utils, util


class Reporter(object):
    """Accumulates ExecutionResults in the order they were produced and selects the best one.

    Only results with status Success take part in selecting the best configuration.
    Results that failed verification keep their measured time in the table but can never
    be the best.
    """

    def __init__(self, quiet=False, units=None):
        self.quiet = quiet
        self.units = units or {"time": "ms"}
        self._results = []

    def add(self, result):
        self._results.append(result)

    @property
    def results(self):
        return list(self._results)

    def best(self):
        """Return the fastest successful result, or None if there is none."""
        successes = [r for r in self._results if r.succeeded and r.time is not None]
        if not successes:
            return None
        return min(successes, key=lambda r: r.time)

    def best_time(self):
        best = self.best()
        return best.time if best is not None else 0

    def table(self):
        """All results ordered ascending by time, results without a time last."""
        return sorted(self._results, key=lambda r: (r.time is None, r.time if r.time is not None else 0.0))

    def get_result_string(self, result):
        params = dict(result.config)
        if result.time is not None:
            params["time"] = result.time
        string = result.kernel_name + ": " + util.get_config_string(params, units=self.units)
        if not result.succeeded:
            string += " " + result.status
        return string

    def print_result(self, result):
        """Print the configuration string with tunable parameters and benchmark result."""
        if not self.quiet:
            print(self.get_result_string(result))

    def print_to_screen(self):
        """Print the table and the best configuration, return the best time or 0."""
        best = self.best()
        if not self.quiet:
            for result in self.table():
                print(self.get_result_string(result))
            if best is None:
                print("no successful and verified configuration found")
            else:
                print("best performing configuration:")
                print(self.get_result_string(best))
        return self.best_time()

    def print_to_file(self, filename):
        file_utils.store_csv_file(filename, self.table())

    def print_json(self, filename, env=None):
        file_utils.store_output_file(filename, self._results, env)
