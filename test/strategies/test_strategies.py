import sys

import numpy as np
import pytest

from cltuner import util
from cltuner.searchspace import Constraint, Searchspace
from cltuner.strategies import common
from cltuner.strategies.brute_force import FullSearch
from cltuner.strategies.pso import ParticleSwarm
from cltuner.strategies.random_sample import RandomSearch
from cltuner.strategies.simulated_annealing import SimulatedAnnealing, acceptance_prob
from cltuner.tuner import strategy_map

ten_searchspace = Searchspace(dict(X=tuple(range(1, 11))))

tune_params = dict(A=(1, 2, 4, 8, 16), B=(1, 2, 4, 8), C=(1, 2, 3))
searchspace = Searchspace(tune_params, [Constraint.parse("A", "multiple_of", "B")])

empty_searchspace = Searchspace(dict(A=(1, 3), B=(2,)), [Constraint.parse("A", "multiple_of", "B")])


def fake_time(config):
    """a smooth landscape with its minimum at A=8, B=2, C=3"""
    a, b, c = config
    return 1.0 + abs(a - 8) + abs(b - 2) + (3 - c)


def run(strategy, time_function=fake_time):
    visited = []
    while not strategy.is_done():
        config = strategy.next_configuration()
        visited.append(config)
        strategy.push_execution_time(time_function(config))
    return visited


def test_full_search_scenario():
    simple = Searchspace(dict(A=(1, 2), B=(1, 2)), [Constraint.parse("A", "multiple_of", "B")])
    strategy = FullSearch(simple)
    assert run(strategy, lambda config: 1.0) == [(1, 1), (2, 1), (2, 2)]


def test_full_search_completeness():
    strategy = FullSearch(searchspace)
    visited = run(strategy)
    assert visited == searchspace.list
    assert len(set(visited)) == searchspace.size
    assert strategy.progress() == 1.0
    with pytest.raises(util.SearchExhausted):
        strategy.next_configuration()


def test_full_search_rejects_options():
    with pytest.raises(ValueError):
        FullSearch(searchspace, dict(max_fevals=10))


def test_random_search_scenario():
    strategy = RandomSearch(ten_searchspace, dict(fraction=0.5))
    visited = run(strategy, lambda config: 1.0)
    assert len(visited) == 5
    assert len(set(visited)) == 5
    for config in visited:
        assert ten_searchspace.is_param_config_valid(config)


def test_random_search_rounding():
    # 0.25 * 10 = 2.5 rounds up, 0.24 * 10 = 2.4 rounds down
    assert len(run(RandomSearch(ten_searchspace, dict(fraction=0.25)), lambda config: 1.0)) == 3
    assert len(run(RandomSearch(ten_searchspace, dict(fraction=0.24)), lambda config: 1.0)) == 2
    assert len(run(RandomSearch(ten_searchspace, dict(fraction=0.0)), lambda config: 1.0)) == 0
    assert len(run(RandomSearch(ten_searchspace, dict(fraction=1.0)), lambda config: 1.0)) == 10


def test_random_search_max_fevals():
    visited = run(RandomSearch(searchspace, dict(max_fevals=7)))
    assert len(visited) == 7
    assert len(set(visited)) == 7
    assert len(run(RandomSearch(ten_searchspace, dict(max_fevals=100)), lambda config: 1.0)) == 10


def test_random_search_bad_fraction():
    with pytest.raises(ValueError):
        RandomSearch(ten_searchspace, dict(fraction=1.5))


@pytest.mark.parametrize("strategy_name", list(strategy_map.keys()))
def test_empty_searchspace(strategy_name):
    with pytest.raises(util.NoValidConfiguration):
        strategy_map[strategy_name](empty_searchspace)


@pytest.mark.parametrize("strategy_name", list(strategy_map.keys()))
def test_unknown_option(strategy_name):
    with pytest.raises(ValueError):
        strategy_map[strategy_name](searchspace, dict(does_not_exist=1))


@pytest.mark.parametrize("strategy_name", list(strategy_map.keys()))
def test_only_valid_configurations(strategy_name):
    strategy = strategy_map[strategy_name](searchspace)
    visited = run(strategy)
    assert visited
    for config in visited:
        assert searchspace.is_param_config_valid(config)
    assert strategy.is_done()
    assert strategy.progress() == 1.0
    with pytest.raises(util.SearchExhausted):
        strategy.next_configuration()


def test_annealing_budget():
    strategy = SimulatedAnnealing(searchspace, dict(max_fevals=15))
    visited = run(strategy)
    assert len(visited) == 15
    assert strategy.best_time == min(fake_time(config) for config in visited)
    assert strategy.evaluations == 15


def test_annealing_default_budget():
    strategy = SimulatedAnnealing(ten_searchspace)
    # 10% of 10 configurations
    assert len(run(strategy, lambda config: 1.0)) == 1

    strategy = SimulatedAnnealing(searchspace, dict(fraction=0.5))
    assert strategy.max_fevals == int(0.5 * searchspace.size + 0.5)


def test_annealing_temperature_decays():
    strategy = SimulatedAnnealing(searchspace, dict(max_fevals=20))
    temperatures = [strategy.T]
    while not strategy.is_done():
        config = strategy.next_configuration()
        strategy.push_execution_time(fake_time(config))
        temperatures.append(strategy.T)
    assert all(t1 > t2 for t1, t2 in zip(temperatures, temperatures[1:]))
    assert temperatures[-2] > strategy.T_min
    assert temperatures[-1] == pytest.approx(strategy.T_min)


def test_annealing_bad_temperatures():
    with pytest.raises(ValueError):
        SimulatedAnnealing(searchspace, dict(T=0.0001, T_min=0.5))


def test_annealing_never_accepts_failure_after_success():
    strategy = SimulatedAnnealing(searchspace, dict(max_fevals=30))
    first = strategy.next_configuration()
    strategy.push_execution_time(2.0)
    for _ in range(10):
        strategy.next_configuration()
        strategy.push_execution_time(common.error_value)
        assert strategy.current == first
        assert strategy.current_time == 2.0


def test_acceptance_prob():
    error_value = sys.float_info.max
    assert acceptance_prob(error_value, 1.0, 0.5) == 1.0
    assert acceptance_prob(1.0, error_value, 0.5) == 0.0
    assert acceptance_prob(2.0, 1.0, 0.5) == 1.0
    # a slowdown of 1 ms at T=0.5 is accepted with probability exp(-2), regardless of the old time
    assert acceptance_prob(100.0, 101.0, 0.5) == pytest.approx(np.exp(-2.0))
    assert acceptance_prob(1.0, 2.0, 0.5) == pytest.approx(np.exp(-2.0))
    assert acceptance_prob(1.0, 1.1, 0.01) < acceptance_prob(1.0, 1.1, 0.5)


def test_pso_iterations():
    strategy = ParticleSwarm(searchspace, dict(popsize=5, maxiter=4))
    visited = run(strategy)
    assert len(visited) == 20
    assert strategy.best_score_global == min(fake_time(config) for config in visited)


def test_pso_max_fevals():
    strategy = ParticleSwarm(searchspace, dict(popsize=5, maxiter=100, max_fevals=12))
    assert len(run(strategy)) == 12


def test_pso_fraction():
    strategy = ParticleSwarm(ten_searchspace, dict(popsize=3, fraction=0.5))
    assert len(run(strategy, lambda config: float(config[0]))) == 5


def test_pso_positions_stay_in_range():
    strategy = ParticleSwarm(ten_searchspace, dict(popsize=4, maxiter=25, w=2.0, c1=4.0, c2=4.0))
    run(strategy, lambda config: float(config[0]))
    for particle in strategy.swarm:
        assert 0 <= particle.position <= ten_searchspace.size - 1


def test_get_options():
    options = dict(a=("first", 1), b=("second", 2))
    assert common.get_options(dict(b=3), options) == [1, 3]
    assert common.get_options(dict(max_fevals=3), options) == [1, 2]
    with pytest.raises(ValueError):
        common.get_options(dict(c=3), options)
    with pytest.raises(ValueError):
        common.get_options(dict(max_fevals=3), options, unsupported=["max_fevals"])


def test_strategy_docstring():
    assert "fraction" in RandomSearch.__doc__
    assert "popsize" in ParticleSwarm.__doc__
