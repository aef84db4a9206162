"""Module for functionality that is commonly used throughout the strategies."""

import sys
from abc import ABC, abstractmethod

import numpy as np

from cltuner import util
from cltuner.searchspace import Searchspace

# time fed back to a strategy for a trial that did not produce a verified measurement
error_value = sys.float_info.max

_docstring_template = """ Search strategy that proposes kernel configurations one at a time

    This $NAME$ strategy supports the following strategy_options:

$STRAT_OPT$

    :param searchspace: The valid configurations to choose from.
    :type searchspace: cltuner.searchspace.Searchspace

    :param strategy_options: A dictionary with the options listed above.
    :type strategy_options: dict

    """


def get_strategy_docstring(name, strategy_options):
    """Generate the class docstring of a strategy."""
    return _docstring_template.replace("$NAME$", name).replace(
        "$STRAT_OPT$", make_strategy_options_doc(strategy_options)
    )


def make_strategy_options_doc(strategy_options):
    """Generate documentation for the supported strategy options and their defaults."""
    doc = ""
    for opt, val in strategy_options.items():
        doc += f"     * {opt}: {val[0]}, default {str(val[1])}. \n"
    doc += "\n"
    return doc


def get_options(strategy_options, options, unsupported=None):
    """Get the strategy-specific options or their defaults from user-supplied strategy_options."""
    accepted = list(options.keys()) + ["max_fevals"]
    if unsupported:
        accepted = [key for key in accepted if key not in unsupported]
    for key in strategy_options:
        if key not in accepted:
            raise ValueError(f"Unrecognized option {key} in strategy_options")
    assert isinstance(options, dict)
    return [strategy_options.get(opt, default) for opt, (_, default) in options.items()]


def check_searchspace(searchspace: Searchspace):
    """Raise util.NoValidConfiguration if there is nothing to search."""
    if searchspace.size == 0:
        raise util.NoValidConfiguration("the constraints leave no valid configuration to tune")


def fraction_to_count(fraction, size):
    """Number of configurations covered by a fraction of the searchspace, rounded to nearest."""
    if not 0 <= fraction <= 1:
        raise ValueError(f"fraction should be in [0, 1], got {fraction}")
    return int(np.floor(fraction * size + 0.5))


def check_max_fevals(max_fevals):
    if isinstance(max_fevals, bool) or not isinstance(max_fevals, (int, np.integer)) or max_fevals < 0:
        raise ValueError(f"max_fevals should be a non-negative integer, got {max_fevals}")
    return int(max_fevals)


class SearchStrategy(ABC):
    """Interface between the tuner and the way configurations are chosen.

    The tuner repeatedly calls next_configuration(), executes the configuration and
    reports the measured time with push_execution_time() before asking for the next
    one. A strategy stops offering configurations once is_done() returns True, after
    which next_configuration() raises util.SearchExhausted.
    """

    @abstractmethod
    def next_configuration(self):
        """Return the next configuration to execute, as a tuple of parameter values."""
        pass

    @abstractmethod
    def push_execution_time(self, time):
        """Report the time in ms measured for the configuration most recently returned.

        Failed trials are reported as error_value.
        """
        pass

    @abstractmethod
    def is_done(self):
        pass

    @abstractmethod
    def progress(self):
        """Fraction of the planned work completed so far, in [0, 1]."""
        pass
