"""The default strategy that iterates through the whole parameter space."""
from cltuner import util
from cltuner.searchspace import Searchspace
from cltuner.strategies import common

_options = {}


class FullSearch(common.SearchStrategy):

    def __init__(self, searchspace: Searchspace, strategy_options=None):
        # Force error on unsupported options
        common.get_options(strategy_options or {}, _options, unsupported=["max_fevals"])
        common.check_searchspace(searchspace)

        self.configs = searchspace.sorted_list()
        self.index = 0

    def next_configuration(self):
        if self.is_done():
            raise util.SearchExhausted("all configurations have been visited")
        return self.configs[self.index]

    def push_execution_time(self, time):
        self.index += 1

    def is_done(self):
        return self.index >= len(self.configs)

    def progress(self):
        return self.index / len(self.configs)


FullSearch.__doc__ = common.get_strategy_docstring("Full Search", _options)
