"""Iterate over a random sample of the parameter space."""
from cltuner import util
from cltuner.searchspace import Searchspace
from cltuner.strategies import common

_options = dict(fraction=("Fraction of the search space to cover value in [0, 1]", 0.1))


class RandomSearch(common.SearchStrategy):

    def __init__(self, searchspace: Searchspace, strategy_options=None):
        strategy_options = strategy_options or {}
        fraction = common.get_options(strategy_options, _options)[0]
        common.check_searchspace(searchspace)
        num_samples = common.fraction_to_count(fraction, searchspace.size)

        # override if max_fevals is specified
        if "max_fevals" in strategy_options:
            num_samples = min(common.check_max_fevals(strategy_options["max_fevals"]), searchspace.size)

        self.samples = searchspace.get_param_configs_at_indices(searchspace.get_random_sample_indices(num_samples))
        self.index = 0

    def next_configuration(self):
        if self.is_done():
            raise util.SearchExhausted("all sampled configurations have been visited")
        return self.samples[self.index]

    def push_execution_time(self, time):
        self.index += 1

    def is_done(self):
        return self.index >= len(self.samples)

    def progress(self):
        if not self.samples:
            return 1.0
        return self.index / len(self.samples)


RandomSearch.__doc__ = common.get_strategy_docstring("Random Sampling", _options)
