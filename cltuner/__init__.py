from cltuner.searchspace import DIVIDED_BY, MULTIPLE_OF, MULTIPLIED_BY
from cltuner.tuner import Tuner, strategy_map

__version__ = "0.1.0"
