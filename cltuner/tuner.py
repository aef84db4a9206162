"""cltuner driver module

This module contains the Tuner class, the object through which users declare
kernels, their tunable parameters, constraints, thread size modifiers, a reference
kernel and the kernel arguments, and then run the tuning process and report on it.
"""
import logging
import warnings
from collections import OrderedDict
from datetime import datetime

import numpy as np

import cltuner.core as core
import cltuner.util as util
from cltuner.reporter import Reporter
from cltuner.searchspace import Constraint, Restriction, Searchspace
from cltuner.strategies import brute_force, common, pso, random_sample, simulated_annealing

strategy_map = {
    "brute_force": brute_force.FullSearch,
    "random_sample": random_sample.RandomSearch,
    "simulated_annealing": simulated_annealing.SimulatedAnnealing,
    "pso": pso.ParticleSwarm,
}

_strategy_modules = {
    "brute_force": brute_force,
    "random_sample": random_sample,
    "simulated_annealing": simulated_annealing,
    "pso": pso,
}


class Options(OrderedDict):
    """read-only class for passing options around"""

    def __getattr__(self, name):
        if not name.startswith('_'):
            return self[name]
        return super(Options, self).__getattr__(name)

    def __deepcopy__(self, _):
        return self


class Tuner(object):
    """Auto-tuner for one or more parameterized OpenCL kernels

    :param device: OpenCL device to use, in case you have multiple devices.
    :type device: int

    :param platform: OpenCL platform to use, in case you have multiple platforms.
    :type platform: int

    :param iterations: The number of times a kernel is executed to measure its time.
    :type iterations: int

    :param statistic: How the measurements of one configuration are reduced to a single
        time, one of "min", "median", "mean" or a callable that takes a list of times.
    :type statistic: string or callable

    :param atol: The maximum allowed absolute difference between the output of a kernel
        and the output of the reference kernel.
    :type atol: float

    :param verify: Python function used for output verification instead of numpy.allclose.
        It is called as verify(answer, result_host, atol=atol), where answer holds the
        reference output and result_host the kernel output, with None for arguments that
        are not outputs. It should return True when the output is correct.
    :type verify: func(answer, result_host, atol)

    :param strategy: Name of the search strategy, see strategy_map. Full search by default.
    :type strategy: string

    :param strategy_options: Options for the search strategy.
    :type strategy_options: dict

    :param compiler_options: Options passed to the OpenCL compiler.
    :type compiler_options: list(string)

    :param backend: A backend object to use instead of creating an OpenCL context.
    :type backend: cltuner.backends.backend.Backend

    :param quiet: Suppress all output to stdout.
    :type quiet: bool

    :param log: Logging level, for example logging.DEBUG, enables logging to a file.
    :type log: int
    """

    def __init__(self, device=0, platform=0, iterations=7, statistic="min", atol=1e-6, verify=None,
                 strategy=None, strategy_options=None, compiler_options=None, backend=None, quiet=False,
                 log=None, verbose=False):

        if log:
            logging.basicConfig(filename="cltuner" + datetime.now().strftime('%Y%m%d-%H:%M:%S') + '.log', level=log)

        if iterations < 1:
            raise ValueError("Iterations should be at least one!")
        # fail early on an unknown statistic
        util.get_statistic(statistic)
        if verify is not None and not callable(verify):
            raise TypeError("verify should be a callable")

        self.device_options = Options([("device", device), ("platform", platform), ("iterations", iterations),
                                       ("statistic", statistic), ("compiler_options", compiler_options),
                                       ("quiet", quiet)])
        self.atol = atol
        self.verify = verify
        self.verbose = verbose
        self.quiet = quiet
        self.backend = backend
        self.dev = None

        self.kernels = []
        self.reference = None
        self.arguments = []
        self.reporter = Reporter(quiet)
        self.set_strategy(strategy or "brute_force", strategy_options)

        logging.debug('Tuner created')
        logging.debug('device_options: %s', util.get_config_string(self.device_options))

    def _get_kernel(self, kernel_id):
        if isinstance(kernel_id, bool) or not isinstance(kernel_id, int) or not 0 <= kernel_id < len(self.kernels):
            raise ValueError(f"Invalid kernel id {kernel_id}")
        return self.kernels[kernel_id]

    def _check_param_names(self, kernel, names):
        for name in names:
            if name not in kernel.tune_params:
                raise ValueError(f"Unknown parameter '{name}' for kernel {kernel.kernel_name}")

    def add_kernel(self, kernel_source, kernel_name, global_size, local_size):
        """Add a kernel to be tuned, returns the id used to refer to this kernel

        :param kernel_source: The OpenCL source code as a string, or the name of a file containing it.
        :type kernel_source: string

        :param kernel_name: The name of the kernel function in the source.
        :type kernel_name: string

        :param global_size: The base global size, before thread size modifiers, one to three dimensions.
        :type global_size: tuple(int)

        :param local_size: The base local size, before thread size modifiers, same dimensions as global_size.
        :type local_size: tuple(int)

        :rtype: int
        """
        global_size = util.check_size(global_size, "global_size")
        local_size = util.check_size(local_size, "local_size")
        if len(global_size) != len(local_size):
            raise ValueError("global_size and local_size should have the same number of dimensions")

        kernel = Options([("kernel_name", kernel_name),
                          ("kernel_source", core.KernelSource(kernel_name, kernel_source)),
                          ("global_size", global_size),
                          ("local_size", local_size),
                          ("tune_params", OrderedDict()),
                          ("restrictions", []),
                          ("modifiers", [])])
        self.kernels.append(kernel)
        logging.debug('add_kernel %s with id %d', kernel_name, len(self.kernels) - 1)
        return len(self.kernels) - 1

    def add_parameter(self, kernel_id, name, values):
        """Add a tunable parameter with its candidate values, made available in the kernel as a #define"""
        kernel = self._get_kernel(kernel_id)
        util.check_tune_params_name(name, kernel.tune_params)
        kernel.tune_params[name] = util.check_param_values(name, values)

    def add_constraint(self, kernel_id, target, relation, operand, *chain):
        """Add a divisibility constraint between parameters

        For example ``add_constraint(kid, "KWG", "multiple_of", "MDIMC", "*", "NDIMC", "/", "MDIMA")``
        only allows configurations where KWG is a multiple of (MDIMC * NDIMC) / MDIMA. The operand
        chain is evaluated strictly from left to right with integer division.
        """
        kernel = self._get_kernel(kernel_id)
        constraint = Constraint.parse(target, relation, operand, *chain)
        self._check_param_names(kernel, constraint.param_names)
        kernel.restrictions.append(constraint)

    def add_restriction(self, kernel_id, function, param_names):
        """Add an arbitrary restriction, function receives the values of param_names and returns True if valid"""
        kernel = self._get_kernel(kernel_id)
        if not callable(function):
            raise TypeError("restriction should be a callable")
        if isinstance(param_names, str):
            param_names = [param_names]
        param_names = list(param_names)
        self._check_param_names(kernel, param_names)
        kernel.restrictions.append(Restriction(function, param_names))

    def _add_modifier(self, kernel_id, target, operation, param_names):
        kernel = self._get_kernel(kernel_id)
        if isinstance(param_names, str):
            param_names = [param_names]
        param_names = list(param_names)
        dimensions = len(kernel.global_size)
        if len(param_names) != dimensions:
            raise ValueError(f"Expected one parameter per dimension ({dimensions}), got {param_names}")
        self._check_param_names(kernel, param_names)
        kernel.modifiers.append(core.ThreadSizeModifier(target, operation, tuple(param_names)))

    def mul_local_size(self, kernel_id, param_names):
        """Multiply the local size of each dimension by the value of the corresponding parameter"""
        self._add_modifier(kernel_id, "local", "mul", param_names)

    def div_local_size(self, kernel_id, param_names):
        """Divide the local size of each dimension by the value of the corresponding parameter"""
        self._add_modifier(kernel_id, "local", "div", param_names)

    def mul_global_size(self, kernel_id, param_names):
        """Multiply the global size of each dimension by the value of the corresponding parameter"""
        self._add_modifier(kernel_id, "global", "mul", param_names)

    def div_global_size(self, kernel_id, param_names):
        """Divide the global size of each dimension by the value of the corresponding parameter"""
        self._add_modifier(kernel_id, "global", "div", param_names)

    def set_reference(self, kernel_source, kernel_name, global_size, local_size):
        """Set the reference kernel whose output is used to verify every tuned configuration"""
        global_size = util.check_size(global_size, "global_size")
        local_size = util.check_size(local_size, "local_size")
        if len(global_size) != len(local_size):
            raise ValueError("global_size and local_size should have the same number of dimensions")
        self.reference = Options([("kernel_name", kernel_name),
                                  ("kernel_source", core.KernelSource(kernel_name, kernel_source)),
                                  ("global_size", global_size),
                                  ("local_size", local_size)])

    def add_argument_scalar(self, value):
        """Append a scalar kernel argument, a numpy scalar such as numpy.int32(n)"""
        if not isinstance(value, np.generic):
            raise TypeError(f"Scalar arguments should be numpy scalars, got {type(value)}")
        self.arguments.append(core.Argument("scalar", value))

    def add_argument_input(self, buffer):
        """Append an input buffer argument, a numpy array that kernels only read"""
        if not isinstance(buffer, np.ndarray):
            raise TypeError(f"Buffer arguments should be numpy arrays, got {type(buffer)}")
        self.arguments.append(core.Argument("input", buffer))

    def add_argument_output(self, buffer):
        """Append an output buffer argument, restored to the contents of buffer before every kernel run"""
        if not isinstance(buffer, np.ndarray):
            raise TypeError(f"Buffer arguments should be numpy arrays, got {type(buffer)}")
        self.arguments.append(core.Argument("output", buffer))

    def set_strategy(self, strategy, strategy_options=None):
        """Select the search strategy by name, see strategy_map"""
        if strategy not in strategy_map:
            raise ValueError("Strategy %s not recognized" % strategy)
        strategy_options = dict(strategy_options or {})
        # reject unknown options before tuning starts
        common.get_options(strategy_options, _strategy_modules[strategy]._options)
        self.strategy_name = strategy
        self.strategy = strategy_map[strategy]
        self.strategy_options = strategy_options

    def use_full_search(self):
        self.set_strategy("brute_force")

    def use_random_search(self, fraction):
        """Evaluate a random fraction of the search space"""
        self.set_strategy("random_sample", dict(fraction=fraction))

    def use_annealing(self, fraction, max_temperature):
        """Use simulated annealing, evaluating fraction of the search space starting at max_temperature"""
        self.set_strategy("simulated_annealing", dict(fraction=fraction, T=max_temperature))

    def use_pso(self, fraction, swarm_size, influence_global, influence_local, influence_inertia):
        """Use particle swarm optimization, evaluating fraction of the search space"""
        self.set_strategy("pso", dict(fraction=fraction, popsize=swarm_size, c2=influence_global,
                                      c1=influence_local, w=influence_inertia))

    def _get_device_interface(self):
        if self.dev is None:
            dev = self.backend
            if dev is None:
                from cltuner.backends.opencl import OpenCLFunctions
                dev = OpenCLFunctions(self.device_options.device, self.device_options.platform,
                                      compiler_options=self.device_options.compiler_options)
            self.dev = core.DeviceInterface(dev, iterations=self.device_options.iterations,
                                            statistic=self.device_options.statistic, quiet=self.quiet)
        return self.dev

    def tune(self):
        """Tune all kernels, returns the list of ExecutionResults in the order they were produced"""
        if not self.kernels:
            raise ValueError("No kernels to tune, use add_kernel first")
        logging.debug('tune called')

        dev = self._get_device_interface()
        self.reporter = Reporter(self.quiet, dev.units)

        #the user-specified function may or may not have an optional atol argument;
        #we normalize it so that it always accepts atol.
        tuning_options = Options([("answer", None), ("atol", self.atol),
                                  ("verify", util.normalize_verify_function(self.verify)),
                                  ("verbose", self.verbose)])

        gpu_args = dev.ready_argument_list(self.arguments)

        if self.reference is not None:
            reference_options = Options(self.reference)
            reference_options["arguments"] = self.arguments
            tuning_options["answer"] = dev.run_reference(self.reference.kernel_source, reference_options, gpu_args)

        for kernel in self.kernels:
            self._tune_kernel(dev, gpu_args, kernel, tuning_options)

        return self.reporter.results

    def _tune_kernel(self, dev, gpu_args, kernel, tuning_options):
        searchspace = Searchspace(kernel.tune_params, kernel.restrictions)
        logging.debug('searchspace of %s has %d configurations', kernel.kernel_name, searchspace.size)

        try:
            strategy = self.strategy(searchspace, self.strategy_options)
        except util.NoValidConfiguration as e:
            logging.debug('no valid configuration for %s: %s', kernel.kernel_name, str(e))
            warnings.warn(f"No valid configuration for kernel {kernel.kernel_name}, it is not tuned", UserWarning)
            return

        kernel_options = Options(kernel)
        kernel_options["arguments"] = self.arguments

        if not self.quiet:
            print(f"tuning {kernel.kernel_name} with {self.strategy_name}, searchspace size {searchspace.size}")

        # results of this run by configuration, a configuration proposed again is not executed again
        cache = {}

        while not strategy.is_done():
            try:
                config = strategy.next_configuration()
            except util.SearchExhausted:
                break
            if config in cache:
                logging.debug('configuration %s already measured', util.get_instance_string(cache[config].config))
                result = cache[config]
                strategy.push_execution_time(result.time if result.succeeded else common.error_value)
                continue
            params = searchspace.config_to_dict(config)
            result = dev.compile_and_benchmark(kernel.kernel_source, gpu_args, params, kernel_options, tuning_options)
            cache[config] = result
            strategy.push_execution_time(result.time if result.succeeded else common.error_value)
            self.reporter.add(result)
            self.reporter.print_result(result)

    def print_to_screen(self):
        """Print all results and the best configuration, returns the best time or 0 if there is none"""
        return self.reporter.print_to_screen()

    def print_to_file(self, filename):
        """Store all results as a semicolon-delimited table, ordered by time"""
        self.reporter.print_to_file(filename)

    def print_json(self, filename):
        """Store all results and the environment in a JSON file"""
        self.reporter.print_json(filename, self.get_environment())

    def get_best_result(self):
        return self.reporter.best()

    def get_environment(self):
        """Return dictionary with information about the environment"""
        env = self.dev.get_environment() if self.dev is not None else {}
        env["strategy"] = self.strategy_name
        env["strategy_options"] = dict(self.strategy_options)
        return env
