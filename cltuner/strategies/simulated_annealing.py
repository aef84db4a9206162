"""The strategy that uses simulated annealing."""
import random

import numpy as np

from cltuner import util
from cltuner.searchspace import Searchspace
from cltuner.strategies import common

_options = dict(T=("Starting temperature", 0.5),
                T_min=("End temperature", 0.0001),
                alpha=("Alpha parameter", 0.9975),
                fraction=("Fraction of the search space to evaluate when max_fevals is not given", 0.1))


class SimulatedAnnealing(common.SearchStrategy):

    def __init__(self, searchspace: Searchspace, strategy_options=None):
        strategy_options = strategy_options or {}
        T, T_min, alpha, fraction = common.get_options(strategy_options, _options)
        common.check_searchspace(searchspace)
        if not 0 < T_min < T:
            raise ValueError(f"Temperatures should satisfy 0 < T_min < T, got T={T} and T_min={T_min}")
        if not 0 < alpha < 1:
            raise ValueError(f"alpha should be in (0, 1), got {alpha}")

        if "max_fevals" in strategy_options:
            max_fevals = common.check_max_fevals(strategy_options["max_fevals"])
        else:
            max_fevals = common.fraction_to_count(fraction, searchspace.size)
        # limit max_fevals to max size of the parameter space
        self.max_fevals = max(1, min(searchspace.size, max_fevals))

        self.searchspace = searchspace
        self.T_start = T
        self.T_min = T_min
        self.alpha = alpha
        self.T = T

        # number of alpha steps needed to complete the annealing schedule, spread over max_fevals
        self.max_iter = np.log(T_min / T) / np.log(alpha)

        self.current = None
        self.current_time = common.error_value
        self.best = None
        self.best_time = common.error_value
        self.proposed = None
        self.evaluations = 0

    def next_configuration(self):
        if self.is_done():
            raise util.SearchExhausted("annealing budget used up")
        if self.current is None:
            # get random starting point
            self.proposed = self.searchspace.get_random_sample(1)[0]
        else:
            self.proposed = self.searchspace.get_random_neighbor(self.current)
        return self.proposed

    def push_execution_time(self, time):
        self.evaluations += 1

        if self.current is None:
            self.current = self.proposed
            self.current_time = time
        else:
            ap = acceptance_prob(self.current_time, time, self.T)
            if ap > random.random():
                self.current = self.proposed
                self.current_time = time

        if self.best is None or time < self.best_time:
            self.best = self.proposed
            self.best_time = time

        self.T = self.T_start * self.alpha**(self.max_iter / self.max_fevals * self.evaluations)

    def is_done(self):
        return self.evaluations >= self.max_fevals or self.T < self.T_min

    def progress(self):
        return min(1.0, self.evaluations / self.max_fevals)


SimulatedAnnealing.__doc__ = common.get_strategy_docstring("Simulated Annealing", _options)


def acceptance_prob(old_cost, new_cost, T):
    """Annealing equation, with modifications to work towards a lower value."""
    error_val = common.error_value
    # if start pos is not valid, always move
    if old_cost == error_val:
        return 1.0
    # if we have found a valid ps before, never move to nonvalid pos
    if new_cost == error_val:
        return 0.0
    # always move if new cost is better
    if new_cost < old_cost:
        return 1.0
    # maybe move if old cost is better than new cost depending on T and random value
    return np.exp(-(new_cost - old_cost) / T)
