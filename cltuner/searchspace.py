from collections import namedtuple
from random import choice
from typing import List, Union
from warnings import warn

import numpy as np
from constraint import BacktrackingSolver, FunctionConstraint, Problem, Solver

from cltuner.util import fold_operands

MULTIPLE_OF = "multiple_of"
MULTIPLIED_BY = "*"
DIVIDED_BY = "/"

supported_relations = {
    "multiple_of": MULTIPLE_OF,
    "multipleof": MULTIPLE_OF,
}

supported_operators = {
    "*": MULTIPLIED_BY,
    "multiplied_by": MULTIPLIED_BY,
    "multipliedby": MULTIPLIED_BY,
    "/": DIVIDED_BY,
    "divided_by": DIVIDED_BY,
    "dividedby": DIVIDED_BY,
}

Restriction = namedtuple("Restriction", ["function", "param_names"])


class Constraint:
    """Divisibility relation between a target parameter and a chain of operand parameters.

    The constraint ``Constraint("KWG", "multiple_of", ["MDIMC", "NDIMC", "MDIMA"], ["*", "/"])``
    holds when ``KWG % ((MDIMC * NDIMC) // MDIMA) == 0``. The operand chain is always folded
    strictly from left to right.
    """

    def __init__(self, target: str, relation: str, operands: List[str], operators: List[str]):
        if relation not in supported_relations.values():
            raise ValueError(f"Unknown relation {relation}")
        if len(operands) != len(operators) + 1:
            raise ValueError("A constraint needs exactly one more operand than operators")
        self.target = target
        self.relation = relation
        self.operands = list(operands)
        self.operators = list(operators)

    @classmethod
    def parse(cls, target, relation, operand, *chain):
        """Create a constraint from the flat argument list ``target, relation, operand, [operator, operand]...``."""
        if not isinstance(relation, str) or relation.lower() not in supported_relations:
            raise ValueError(f"Relation '{relation}' not recognized, use one of {list(supported_relations.keys())}")
        if len(chain) % 2 != 0:
            raise ValueError("Every operator in a constraint must be followed by an operand")
        operands = [operand] + list(chain[1::2])
        operators = []
        for op in chain[0::2]:
            if not isinstance(op, str) or op.lower() not in supported_operators:
                raise ValueError(f"Operator '{op}' not recognized, use one of {list(supported_operators.keys())}")
            operators.append(supported_operators[op.lower()])
        return cls(target, supported_relations[relation.lower()], operands, operators)

    @property
    def param_names(self) -> List[str]:
        """All parameters this constraint depends on, without duplicates, target first."""
        names = []
        for name in [self.target] + self.operands:
            if name not in names:
                names.append(name)
        return names

    def __call__(self, params: dict) -> bool:
        divisor = fold_operands([params[name] for name in self.operands], self.operators)
        if divisor == 0:
            return False
        return params[self.target] % divisor == 0

    def as_restriction(self) -> Restriction:
        """Wrap this constraint as a function of positional parameter values."""
        names = self.param_names

        def restriction(*values):
            return self(dict(zip(names, values)))

        return Restriction(restriction, names)

    def __str__(self):
        chain = self.operands[0]
        for op, operand in zip(self.operators, self.operands[1:]):
            chain = f"({chain} {op} {operand})"
        return f"{self.target} % {chain} == 0"

    def __repr__(self):
        return f"Constraint({self})"


def check_restrictions(restrictions, params: dict) -> bool:
    """Check whether a configuration satisfies every restriction."""
    for restriction in restrictions:
        if isinstance(restriction, Constraint):
            restriction = restriction.as_restriction()
        if not restriction.function(*[params[name] for name in restriction.param_names]):
            return False
    return True


class Searchspace:
    """Class that provides the search space to strategies."""

    def __init__(self, tune_params: dict, restrictions=None, solver: Solver = None) -> None:
        """Build a searchspace using the variables and constraints.

        The valid configurations are computed by a backtracking solver: parameters are bound
        in declaration order and a constraint is evaluated as soon as all the parameters it
        references are bound, pruning the branch on failure. The resulting list is ordered by
        the declaration order of the candidate values, varying the last parameter fastest.

        :param tune_params: Ordered dictionary from parameter name to candidate values.
        :type tune_params: dict(string: tuple(int))

        :param restrictions: A list of Constraint objects and/or Restriction tuples.
        :type restrictions: list

        :param solver: python-constraint solver to use, BacktrackingSolver by default.
        :type solver: constraint.Solver
        """
        self.tune_params = tune_params
        self.restrictions = list(restrictions) if restrictions is not None else []
        self.param_names = list(self.tune_params.keys())
        self.params_values = tuple(tuple(param_vals) for param_vals in self.tune_params.values())
        self.num_params = len(self.tune_params)

        for restriction in self.restrictions:
            names = restriction.param_names
            for name in names:
                if name not in self.tune_params:
                    raise ValueError(f"Restriction {restriction} refers to unknown parameter '{name}'")

        self.list, self.__dict, self.size = self.__build_searchspace(solver or BacktrackingSolver())
        self.__numpy = None
        self.indices = np.arange(self.size)

    def __build_searchspace(self, solver: Solver):
        """Compute valid configurations in a search space based on restrictions."""
        if self.num_params == 0:
            parameter_space_list = [()]
        else:
            # instantiate the parameter space with all the variables
            parameter_space = Problem(solver)
            for param_name, param_values in self.tune_params.items():
                parameter_space.addVariable(param_name, list(param_values))

            # each restriction only depends on its own parameters, so it can prune partial assignments
            for restriction in self.restrictions:
                if isinstance(restriction, Constraint):
                    restriction = restriction.as_restriction()
                parameter_space.addConstraint(FunctionConstraint(restriction.function), list(restriction.param_names))

            solutions = parameter_space.getSolutions()
            parameter_space_list = [tuple(solution[name] for name in self.param_names) for solution in solutions]

        # order by declaration order of the candidate values
        parameter_space_list.sort(key=self.get_param_indices)

        parameter_space_dict = dict(zip(parameter_space_list, range(len(parameter_space_list))))
        if len(parameter_space_dict) != len(parameter_space_list):
            raise ValueError("duplicate parameter configurations in the searchspace, this should not happen.")
        return parameter_space_list, parameter_space_dict, len(parameter_space_list)

    def sorted_list(self):
        """Returns list of parameter configs sorted based on the order in which the parameter values were specified."""
        return list(self.list)

    def is_param_config_valid(self, param_config: tuple) -> bool:
        """Returns whether the parameter config is valid (i.e. is in the searchspace after restrictions)."""
        return self.get_param_config_index(param_config) is not None

    def get_list_numpy(self) -> np.ndarray:
        """Get the parameter space list as a NumPy array."""
        if self.__numpy is None:
            self.__numpy = np.array(self.list).reshape(self.size, self.num_params)
        return self.__numpy

    def get_param_indices(self, param_config: tuple) -> tuple:
        """For each parameter value in the param config, find the index in the tunable parameters."""
        return tuple(self.params_values[index].index(param_value) for index, param_value in enumerate(param_config))

    def get_param_configs_at_indices(self, indices: List[int]) -> List[tuple]:
        """Get the param configs at the given indices."""
        return list(map(self.list.__getitem__, indices))

    def get_param_config_index(self, param_config: Union[tuple, list]):
        """Lookup the index for a parameter configuration, returns None if not found."""
        return self.__dict.get(tuple(param_config), None)

    def config_to_dict(self, param_config: tuple) -> dict:
        """Convert a parameter configuration to a dictionary from parameter name to value."""
        return dict(zip(self.param_names, param_config))

    def get_random_sample_indices(self, num_samples: int) -> np.ndarray:
        """Get the list indices for a random, non-conflicting sample."""
        if num_samples > self.size:
            raise ValueError(
                f"The number of samples requested ({num_samples}) is greater than the searchspace size ({self.size})"
            )
        return np.random.choice(self.indices, size=num_samples, replace=False)

    def get_random_sample(self, num_samples: int) -> List[tuple]:
        """Get the parameter configurations for a random, non-conflicting sample (caution: not unique in consecutive calls)."""
        if self.size < num_samples:
            warn(
                f"Too many samples requested ({num_samples}), reducing the number of samples to the searchspace size ({self.size})"
            )
            num_samples = self.size
        return self.get_param_configs_at_indices(self.get_random_sample_indices(num_samples))

    def get_neighbors_indices(self, param_config: tuple) -> List[int]:
        """Get the indices of the valid configurations that differ from param_config in exactly one parameter."""
        if self.size == 0:
            return []
        num_matching_params = np.count_nonzero(self.get_list_numpy() == np.array(param_config), -1)
        return list((num_matching_params == self.num_params - 1).nonzero()[0])

    def get_neighbors(self, param_config: tuple) -> List[tuple]:
        """Get the valid configurations that differ from param_config in exactly one parameter."""
        return self.get_param_configs_at_indices(self.get_neighbors_indices(param_config))

    def get_adjacent_config(self, param_config: tuple, index: int, step: int):
        """Move the parameter at index to a neighboring candidate value.

        Returns the new configuration, or None when the move falls outside the candidate values.
        The returned configuration is not necessarily valid.
        """
        values = self.params_values[index]
        value_index = values.index(param_config[index]) + step
        if value_index < 0 or value_index >= len(values):
            return None
        new_config = list(param_config)
        new_config[index] = values[value_index]
        return tuple(new_config)

    def get_random_neighbor(self, param_config: tuple, max_attempts: int = None):
        """Perturb one randomly chosen parameter to a neighboring candidate value.

        Moves that violate the constraints are re-sampled; when no adjacent move is valid any
        valid configuration at Hamming distance one is used, and as a last resort a random
        configuration from the searchspace.
        """
        tunable = [i for i, values in enumerate(self.params_values) if len(values) > 1]
        if not tunable:
            return tuple(param_config)
        if max_attempts is None:
            max_attempts = 4 * len(tunable)
        for _ in range(max_attempts):
            new_config = self.get_adjacent_config(param_config, choice(tunable), choice([-1, 1]))
            if new_config is not None and self.is_param_config_valid(new_config):
                return new_config
        neighbors = self.get_neighbors(param_config)
        if neighbors:
            return choice(neighbors)
        return self.get_random_sample(1)[0]
