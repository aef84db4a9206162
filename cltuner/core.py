""" Module for grouping the core functionality needed to compile, verify and benchmark kernel instances """

import logging
import time
from collections import namedtuple
from datetime import datetime, timezone

import numpy as np

import cltuner.util as util
from cltuner.observers.observer import HostTimeObserver

ThreadSizeModifier = namedtuple("ThreadSizeModifier", ["target", "operation", "param_names"])

Argument = namedtuple("Argument", ["kind", "value"])

argument_kinds = ("scalar", "input", "output")

_KernelInstance = namedtuple(
    "_KernelInstance",
    [
        "name",
        "kernel_source",
        "kernel_string",
        "global_size",
        "local_size",
        "params",
        "arguments",
    ],
)


class KernelInstance(_KernelInstance):
    """Class that represents the specific parameterized instance of a kernel"""

    def prepare_temp_file_for_error_msg(self):
        """Write the rendered source to a temp file, and return the temp file name"""
        temp_filename = util.get_temp_filename(suffix=".cl")
        util.write_file(temp_filename, self.kernel_string)
        return temp_filename


_ExecutionResult = namedtuple(
    "_ExecutionResult",
    [
        "kernel_name",
        "config",
        "time",
        "error",
        "detail",
        "times",
        "compile_time",
        "verification_time",
        "benchmark_time",
        "timestamp",
    ],
)


class ExecutionResult(_ExecutionResult):
    """The outcome of compiling, verifying and benchmarking one configuration.

    ``time`` is the measured time in milliseconds, or None if the kernel never ran.
    ``error`` is None for a successful trial, otherwise a util.ErrorConfig instance.
    """

    @property
    def status(self):
        if self.error is None:
            return util.SUCCESS
        return self.error.status

    @property
    def succeeded(self):
        return self.error is None

    def as_dict(self):
        """Flatten the result into a dictionary, with the parameter values at the top level."""
        out = dict(kernel_name=self.kernel_name)
        out.update(self.config)
        out["time"] = self.time
        out["status"] = self.status
        out["detail"] = self.detail
        out["times"] = list(self.times)
        out["compile_time"] = self.compile_time
        out["verification_time"] = self.verification_time
        out["benchmark_time"] = self.benchmark_time
        out["timestamp"] = self.timestamp
        return out


class KernelSource(object):
    """Class that holds the kernel source.

    The kernel source can be either a source string or a filename, indicating a file
    containing the kernel source code.
    """

    def __init__(self, kernel_name, kernel_source, defines=None):
        if not isinstance(kernel_name, str) or not kernel_name:
            raise ValueError("kernel_name should be a non-empty string")
        self.kernel_name = kernel_name
        self.kernel_source = kernel_source
        self.defines = defines

    def get_kernel_string(self):
        """retrieve the kernel source and return as a string"""
        return util.get_kernel_string(self.kernel_source)

    def prepare_kernel_string(self, params):
        """render the kernel source for one configuration, returns the kernel name and source"""
        return util.prepare_kernel_string(self.kernel_name, self.get_kernel_string(), params, self.defines)


class DeviceInterface(object):
    """Class that offers a High-Level Device Interface to the rest of cltuner"""

    def __init__(self, dev, iterations=7, statistic="min", quiet=False):
        """Instantiate the DeviceInterface around an explicit backend

        :param dev: The backend that owns the device context, for example
            cltuner.backends.opencl.OpenCLFunctions.
        :type dev: cltuner.backends.backend.Backend

        :param iterations: Number of times each kernel instance is executed during benchmarking.
        :type iterations: int

        :param statistic: How the repeated measurements are reduced to a single time,
            one of "min", "median", "mean" or a callable accepting the list of times.
        :type statistic: string or callable

        :param quiet: Suppress printing the device name.
        :type quiet: bool
        """
        if iterations < 1:
            raise ValueError("Iterations should be at least one!")
        self.dev = dev
        self.iterations = iterations
        self.statistic = util.get_statistic(statistic)
        self.statistic_name = statistic if isinstance(statistic, str) else getattr(statistic, "__name__", "custom")

        self.benchmark_observers = list(getattr(dev, "observers", None) or [])
        if not self.benchmark_observers:
            host_timer = HostTimeObserver()
            host_timer.register_device(dev)
            self.benchmark_observers.append(host_timer)

        self.name = getattr(dev, "name", type(dev).__name__)
        self.max_threads = getattr(dev, "max_threads", None)
        self.units = getattr(dev, "units", {"time": "ms"})
        logging.debug("DeviceInterface instantiated for %s", self.name)
        if not quiet:
            print("Using: " + self.name)

    def benchmark(self, func, gpu_args, instance):
        """Benchmark one kernel instance, executing it 'iterations' times

        Every execution is synchronized before its measurement is recorded, so
        no two executions overlap.
        """
        logging.debug("benchmark " + instance.name)
        logging.debug("global size %s, local size %s", instance.global_size, instance.local_size)

        for obs in self.benchmark_observers:
            obs.register_configuration(instance.params)

        self.reset_output_arguments(gpu_args, instance.arguments)

        self.dev.synchronize()
        for _ in range(self.iterations):
            for obs in self.benchmark_observers:
                obs.before_start()
            self.dev.synchronize()
            self.dev.start_event()
            self.dev.run_kernel(func, gpu_args, instance.global_size, instance.local_size)
            self.dev.stop_event()
            for obs in self.benchmark_observers:
                obs.after_start()
            while not self.dev.kernel_finished():
                time.sleep(1e-6)  # one microsecond
            self.dev.synchronize()
            for obs in self.benchmark_observers:
                obs.after_finish()

        result = {}
        for obs in self.benchmark_observers:
            result.update(obs.get_results())
        result["time"] = float(self.statistic(result["times"]))
        return result

    def check_kernel_output(self, func, gpu_args, instance, answer, atol, verify, verbose=False):
        """runs the kernel once and checks the result against answer, returns True if correct"""
        logging.debug("check_kernel_output")

        # re-copy original contents of output arguments to device memory, to overwrite any changes
        # by earlier kernel runs
        self.reset_output_arguments(gpu_args, instance.arguments)

        self.run_kernel(func, gpu_args, instance)
        self.dev.synchronize()

        result_host = self.copy_output_arguments(gpu_args, instance.arguments)

        if verify:
            correct = verify(answer, result_host, atol=atol)
        else:
            correct = _default_verify_function(instance, answer, result_host, atol, verbose)
        return bool(correct)

    def compile_and_benchmark(self, kernel_source, gpu_args, params, kernel_options, to):
        """Compile, verify and benchmark the kernel for one configuration

        Failures of this particular configuration are recorded in the returned
        ExecutionResult rather than raised.

        :returns: The outcome of this trial.
        :rtype: cltuner.core.ExecutionResult
        """
        last_compilation_time = 0
        last_verification_time = 0
        last_benchmark_time = 0
        timestamp = str(datetime.now(timezone.utc))

        instance_string = util.get_instance_string(params)
        logging.debug("compile_and_benchmark " + instance_string)

        def make_result(measured=None, error=None, detail=None):
            measured = measured or {}
            return ExecutionResult(
                kernel_options.kernel_name,
                dict(params),
                measured.get("time"),
                error,
                detail,
                measured.get("times", []),
                last_compilation_time,
                last_verification_time,
                last_benchmark_time,
                timestamp,
            )

        try:
            instance = self.create_kernel_instance(kernel_source, kernel_options, params)
        except util.SkippableFailure as e:
            logging.debug("skipping config %s reason: %s", instance_string, str(e))
            if to.verbose:
                print(f"skipping config {instance_string} reason: {e}")
            return make_result(error=util.RuntimeFailedConfig(), detail=str(e))

        # compile the kernel
        start_compilation = time.perf_counter()
        try:
            func = self.compile_kernel(instance)
        except Exception as e:
            last_compilation_time = 1000 * (time.perf_counter() - start_compilation)
            detail = str(e.stderr) if hasattr(e, "stderr") else str(e)
            logging.debug("compile_kernel failed due to error: " + detail)
            if to.verbose:
                print(f"compile_kernel failed for {instance_string}, see source file: {instance.prepare_temp_file_for_error_msg()}")
            return make_result(error=util.CompilationFailedConfig(), detail=detail)
        last_compilation_time = 1000 * (time.perf_counter() - start_compilation)

        error = None
        detail = None

        # test kernel for correctness
        if to.answer is not None or to.verify:
            start_verification = time.perf_counter()
            try:
                if not self.check_kernel_output(func, gpu_args, instance, to.answer, to.atol, to.verify, to.verbose):
                    error = util.VerificationFailedConfig()
                    detail = "kernel output differs from the reference output"
            except util.SkippableFailure as e:
                last_verification_time = 1000 * (time.perf_counter() - start_verification)
                self._flush_observers()
                return make_result(error=util.RuntimeFailedConfig(), detail=str(e))
            except Exception as e:
                logging.debug("verification encountered an error: " + str(e))
                error = util.VerificationFailedConfig()
                detail = str(e)
            last_verification_time = 1000 * (time.perf_counter() - start_verification)

        # benchmark
        start_benchmark = time.perf_counter()
        try:
            measured = self.benchmark(func, gpu_args, instance)
        except Exception as e:
            last_benchmark_time = 1000 * (time.perf_counter() - start_benchmark)
            logging.debug("benchmark encountered runtime failure: " + str(e))
            if to.verbose:
                print(f"skipping config {instance_string} reason: {e}")
            self._flush_observers()
            return make_result(error=util.RuntimeFailedConfig(), detail=str(e))
        last_benchmark_time = 1000 * (time.perf_counter() - start_benchmark)

        # the compiled kernel is owned by this trial only
        del func

        return make_result(measured, error, detail)

    def compile_kernel(self, instance):
        """compile the kernel for this specific instance"""
        logging.debug("compile_kernel " + instance.name)
        return self.dev.compile(instance)

    def create_kernel_instance(self, kernel_source, kernel_options, params):
        """create kernel instance from kernel source, parameters, base sizes and thread size modifiers

        Raises util.SkippableFailure when the launch geometry does not resolve to valid sizes.
        """
        global_size, local_size = util.setup_global_and_local(
            kernel_options.global_size,
            kernel_options.local_size,
            kernel_options.modifiers,
            params,
            self.max_threads,
        )

        name, kernel_string = kernel_source.prepare_kernel_string(params)

        return KernelInstance(name, kernel_source, kernel_string, global_size, local_size, dict(params), kernel_options.arguments)

    def run_reference(self, reference_source, reference_options, gpu_args):
        """Run the reference kernel once and return the contents of all output arguments

        :returns: A list with one element per kernel argument, holding a numpy array with
            the reference output for output arguments and None for all other arguments.
        :rtype: list
        """
        logging.debug("run_reference " + reference_source.kernel_name)
        name, kernel_string = reference_source.prepare_kernel_string({})
        instance = KernelInstance(
            name,
            reference_source,
            kernel_string,
            reference_options.global_size,
            reference_options.local_size,
            {},
            reference_options.arguments,
        )
        try:
            func = self.compile_kernel(instance)
            self.reset_output_arguments(gpu_args, instance.arguments)
            self.run_kernel(func, gpu_args, instance)
            self.dev.synchronize()
        except Exception as e:
            raise RuntimeError(f"reference kernel {reference_source.kernel_name} failed: {e}") from e
        return self.copy_output_arguments(gpu_args, instance.arguments)

    def get_environment(self):
        """Return dictionary with information about the environment"""
        env = dict(getattr(self.dev, "env", {}))
        env["device_name"] = self.name
        env["iterations"] = self.iterations
        env["statistic"] = self.statistic_name
        return env

    def ready_argument_list(self, arguments):
        """ready argument list to be passed to the kernel, allocates gpu mem if necessary"""
        return self.dev.ready_argument_list([arg.value for arg in arguments])

    def reset_output_arguments(self, gpu_args, arguments):
        """copy the original host contents of all output arguments back to the device"""
        for i, arg in enumerate(arguments):
            if arg.kind == "output":
                self.dev.memcpy_htod(gpu_args[i], arg.value)

    def copy_output_arguments(self, gpu_args, arguments):
        """copy all output arguments from the device to new host arrays"""
        result_host = []
        for i, arg in enumerate(arguments):
            if arg.kind == "output":
                result_host.append(np.zeros_like(arg.value))
                self.dev.memcpy_dtoh(result_host[-1], gpu_args[i])
            else:
                result_host.append(None)
        return result_host

    def run_kernel(self, func, gpu_args, instance):
        """Run a compiled kernel instance on a device, raises util.SkippableFailure if the launch fails"""
        logging.debug("run_kernel %s", instance.name)
        logging.debug("global size %s, local size %s", instance.global_size, instance.local_size)

        try:
            self.dev.run_kernel(func, gpu_args, instance.global_size, instance.local_size)
        except Exception as e:
            logging.debug("encountered runtime failure: " + str(e))
            raise util.SkippableFailure(str(e)) from e

    def _flush_observers(self):
        for obs in self.benchmark_observers:
            obs.get_results()


def _default_verify_function(instance, answer, result_host, atol, verbose):
    """default verify function based on np.allclose"""

    # first check if the length is the same
    if len(instance.arguments) != len(answer):
        raise TypeError("The length of argument list and provided results do not match.")

    correct = True
    for i, arg in enumerate(instance.arguments):
        expected = answer[i]
        if expected is not None:
            result = np.ravel(result_host[i])
            expected = np.ravel(expected)
            if expected.size != result.size:
                raise TypeError(
                    f"Element {i} of the expected results list has a size different from "
                    + f"the kernel argument: {expected.size} != {result.size}."
                )
            output_test = np.allclose(expected, result, atol=atol)

            if not output_test and verbose:
                print("Error: " + util.get_config_string(instance.params) + " detected during correctness check")
                print(f"this error occurred when checking value of the {i}th kernel argument")
            correct = correct and output_test

    if not correct:
        logging.debug("correctness check has found a correctness issue")

    return correct
