"""The strategy that uses particle swarm optimization."""
import random

import numpy as np

from cltuner import util
from cltuner.searchspace import Searchspace
from cltuner.strategies import common

_options = dict(popsize=("Population size", 20),
                maxiter=("Maximum number of iterations", 100),
                w=("Inertia weight constant", 0.5),
                c1=("Cognitive constant", 2.0),
                c2=("Social constant", 1.0),
                fraction=("Fraction of the search space to evaluate, None for no limit", None))


class ParticleSwarm(common.SearchStrategy):
    """Particle swarm over the sequence of valid configurations.

    Each particle moves along a single axis, its position being a float index into
    the list of valid configurations, which it rounds to select a configuration.
    """

    def __init__(self, searchspace: Searchspace, strategy_options=None):
        strategy_options = strategy_options or {}
        num_particles, maxiter, w, c1, c2, fraction = common.get_options(strategy_options, _options)
        common.check_searchspace(searchspace)
        if num_particles < 1:
            raise ValueError(f"popsize should be at least one, got {num_particles}")

        self.max_fevals = None
        if "max_fevals" in strategy_options:
            self.max_fevals = common.check_max_fevals(strategy_options["max_fevals"])
        elif fraction is not None:
            self.max_fevals = max(1, common.fraction_to_count(fraction, searchspace.size))

        self.searchspace = searchspace
        self.bounds = (0.0, float(searchspace.size - 1))
        self.maxiter = maxiter
        self.w, self.c1, self.c2 = w, c1, c2

        # init particle swarm
        self.swarm = [Particle(self.bounds) for _ in range(num_particles)]

        # ensure particles start from distinct legal points where possible
        start = searchspace.get_random_sample_indices(min(num_particles, searchspace.size))
        for particle, index in zip(self.swarm, start):
            particle.position = float(index)
            particle.best_pos = particle.position

        self.best_position_global = self.swarm[0].position
        self.best_score_global = common.error_value

        self.iteration = 0
        self.particle_index = 0
        self.evaluations = 0

    def next_configuration(self):
        if self.is_done():
            raise util.SearchExhausted("particle swarm finished")
        return self.searchspace.list[self.swarm[self.particle_index].get_index(self.bounds)]

    def push_execution_time(self, time):
        particle = self.swarm[self.particle_index]
        particle.evaluate(time)
        self.evaluations += 1

        # update global best if needed
        if particle.score <= self.best_score_global:
            self.best_position_global = particle.position
            self.best_score_global = particle.score

        self.particle_index += 1
        if self.particle_index == len(self.swarm):
            # update particle velocities and positions
            for p in self.swarm:
                p.update_velocity(self.best_position_global, self.w, self.c1, self.c2)
                p.update_position(self.bounds)
            self.particle_index = 0
            self.iteration += 1

    def is_done(self):
        if self.max_fevals is not None and self.evaluations >= self.max_fevals:
            return True
        return self.iteration >= self.maxiter

    def progress(self):
        total = self.maxiter * len(self.swarm)
        if self.max_fevals is not None:
            total = min(total, self.max_fevals)
        if total == 0:
            return 1.0
        return min(1.0, self.evaluations / total)


ParticleSwarm.__doc__ = common.get_strategy_docstring("Particle Swarm Optimization (PSO)", _options)


class Particle:
    def __init__(self, bounds):
        self.velocity = np.random.uniform(-1, 1)
        self.position = np.random.uniform(bounds[0], bounds[1])
        self.best_pos = self.position
        self.best_score = common.error_value
        self.score = common.error_value

    def get_index(self, bounds):
        return int(round(min(max(self.position, bounds[0]), bounds[1])))

    def evaluate(self, score):
        self.score = score
        # update best_pos if needed
        if self.score < self.best_score:
            self.best_pos = self.position
            self.best_score = self.score

    def update_velocity(self, best_position_global, w, c1, c2):
        r1 = random.random()
        r2 = random.random()
        vc = c1 * r1 * (self.best_pos - self.position)
        vs = c2 * r2 * (best_position_global - self.position)
        self.velocity = w * self.velocity + vc + vs

    def update_position(self, bounds):
        self.position = self.position + self.velocity
        self.position = min(self.position, bounds[1])
        self.position = max(self.position, bounds[0])
