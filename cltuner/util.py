"""Module for cltuner utility functions."""

import json
import logging
import os
import re
import tempfile
from inspect import signature

import numpy as np


class ErrorConfig(str):
    """Marker stored in an ExecutionResult when a trial did not succeed."""

    status = "Error"

    def __str__(self):
        return self.__class__.__name__

    def __repr__(self):
        return self.__class__.__name__


class CompilationFailedConfig(ErrorConfig):
    status = "CompileFailed"


class RuntimeFailedConfig(ErrorConfig):
    status = "RuntimeFailed"


class VerificationFailedConfig(ErrorConfig):
    status = "VerificationFailed"


SUCCESS = "Success"

status_map = {
    SUCCESS: None,
    CompilationFailedConfig.status: CompilationFailedConfig,
    RuntimeFailedConfig.status: RuntimeFailedConfig,
    VerificationFailedConfig.status: VerificationFailedConfig,
}


class NpEncoder(json.JSONEncoder):
    """Class we use for dumping Numpy objects to JSON."""

    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        return super(NpEncoder, self).default(obj)


class SkippableFailure(Exception):
    """Exception used when a kernel instance cannot be launched for a reason that can be expected."""


class SearchExhausted(Exception):
    """Exception thrown by a search strategy when it has no more configurations to offer."""


class NoValidConfiguration(Exception):
    """Exception thrown when the constraints admit no configuration at all."""


default_statistics = {
    "min": np.min,
    "median": np.median,
    "mean": np.mean,
}


def get_statistic(statistic):
    """Return the function that reduces the repeated measurements of one trial to a single time."""
    if callable(statistic):
        return statistic
    if statistic in default_statistics:
        return default_statistics[statistic]
    raise ValueError(f"Unknown statistic {statistic}, use one of {list(default_statistics.keys())} or a callable")


def check_tune_params_name(name, tune_params):
    """Raise an exception if name cannot be used as a new tunable parameter."""
    if not isinstance(name, str) or not name.isidentifier():
        raise ValueError(f"Parameter name '{name}' is not a valid identifier")
    if name in tune_params:
        raise ValueError(f"Parameter '{name}' has already been added to this kernel")
    if name == "cltuner":
        raise ValueError("Parameter name 'cltuner' is reserved")


def check_param_values(name, values):
    """Return the candidate values as a tuple of ints, raise an exception if they are not usable."""
    values = tuple(values)
    if not values:
        raise ValueError(f"Parameter '{name}' needs at least one candidate value")
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, np.integer)):
            raise TypeError(f"Candidate values of parameter '{name}' must be integers, got {v!r}")
    values = tuple(int(v) for v in values)
    if len(set(values)) != len(values):
        raise ValueError(f"Parameter '{name}' has duplicate candidate values {values}")
    return values


def check_size(size, what):
    """Return a thread size as a tuple of positive ints with one to three dimensions."""
    if isinstance(size, (int, np.integer)):
        size = (size,)
    size = tuple(size)
    if not 1 <= len(size) <= 3:
        raise ValueError(f"{what} should have one to three dimensions, got {size}")
    for s in size:
        if isinstance(s, bool) or not isinstance(s, (int, np.integer)) or s < 1:
            raise ValueError(f"{what} should only contain positive integers, got {size}")
    return tuple(int(s) for s in size)


def get_config_string(params, keys=None, units=None):
    """Return a compact string representation of a measurement."""

    def compact_number(v):
        if isinstance(v, float):
            return "{:.3f}".format(round(v, 3))
        else:
            return str(v)

    compact_str_items = []
    if not keys:
        keys = params.keys()
    for k, v in params.items():
        if k in keys:
            unit = ""
            if isinstance(units, dict) and not isinstance(v, ErrorConfig):
                unit = units.get(k, "")
            compact_str_items.append(k + "=" + compact_number(v) + unit)
    return ", ".join(compact_str_items)


def get_instance_string(params):
    """Combine the parameters to a string mostly used for debug output."""
    return "_".join([str(i) for i in params.values()])


def get_kernel_string(kernel_source):
    """Retrieve the kernel source and return as a string.

    If kernel_source looks like filename, the file is read in, but if
    the file does not exist, it is assumed that the string is not a filename
    after all.

    :param kernel_source: A string containing a filename that points to the
        kernel source, or just a string that contains the code.
    :type kernel_source: string

    :returns: A string containing the kernel code.
    :rtype: string
    """
    logging.debug("get_kernel_string called")

    if not isinstance(kernel_source, str):
        raise TypeError("Error kernel_source is not a string")
    if looks_like_a_filename(kernel_source):
        return read_file(kernel_source) or kernel_source
    return kernel_source


def get_temp_filename(suffix=None):
    """Return a string in the form of temp_X, where X is a large integer."""
    tmp_file = tempfile.mkstemp(suffix=suffix or "", prefix="temp_", dir=os.getcwd())
    os.close(tmp_file[0])
    return tmp_file[1]


def looks_like_a_filename(kernel_source):
    """Attempt to detect whether source code or a filename was passed."""
    logging.debug("looks_like_a_filename called")
    result = False
    if isinstance(kernel_source, str):
        result = True
        # test if not too long
        if len(kernel_source) > 250:
            result = False
        # test if not contains special characters
        for c in "();{}\\\n":
            if c in kernel_source:
                result = False
        # just a safeguard for stuff that looks like code
        for s in ["__kernel ", "__global ", "void ", "float "]:
            if s in kernel_source:
                result = False
        # string must contain substring ".cl" or ".opencl"
        result = result and any([s in kernel_source for s in (".cl", ".opencl")])
    logging.debug("kernel_source is a filename: %s" % str(result))
    return result


def fold_operands(values, operators):
    """Fold a chain of operand values strictly left to right.

    ``values`` holds one more element than ``operators``; "*" multiplies and
    "/" performs integer division, so ``fold_operands([4, 8, 2], ["*", "/"])``
    is ``(4 * 8) // 2``.
    """
    result = values[0]
    for op, value in zip(operators, values[1:]):
        if op == "*":
            result = result * value
        elif op == "/":
            if value == 0:
                return 0
            result = result // value
        else:
            raise ValueError(f"Unknown operator {op}")
    return result


def apply_modifiers(base_size, modifiers, params, target):
    """Apply the thread size modifiers for target ("global" or "local") to base_size in declaration order.

    Returns the resulting sizes, or raises SkippableFailure if any dimension does not
    resolve to a positive integer.
    """
    size = list(base_size)
    for mod in modifiers:
        if mod.target != target:
            continue
        for dim, name in enumerate(mod.param_names):
            value = params[name]
            if mod.operation == "mul":
                size[dim] = size[dim] * value
            elif value == 0 or size[dim] % value != 0:
                raise SkippableFailure(
                    f"{target} size {size[dim]} in dimension {dim} is not divisible by {name}={value}"
                )
            else:
                size[dim] = size[dim] // value
    if any(s < 1 for s in size):
        raise SkippableFailure(f"{target} size {tuple(size)} is not positive")
    return tuple(size)


def setup_global_and_local(global_size, local_size, modifiers, params, max_threads=None):
    """Compute the launch geometry of a kernel instance.

    :param global_size: The base global size (total number of work items per dimension).
    :type global_size: tuple(int)

    :param local_size: The base local size (work-group size).
    :type local_size: tuple(int)

    :param modifiers: The ThreadSizeModifiers of this kernel, in declaration order.
    :type modifiers: list(cltuner.core.ThreadSizeModifier)

    :param params: The configuration for this trial.
    :type params: dict

    :param max_threads: Maximum number of work items in a work-group, or None.
    :type max_threads: int

    :returns: The resolved global and local sizes.
    :rtype: tuple(int), tuple(int)
    """
    resolved_global = apply_modifiers(global_size, modifiers, params, "global")
    resolved_local = apply_modifiers(local_size, modifiers, params, "local")
    if len(resolved_global) != len(resolved_local):
        raise SkippableFailure(f"global size {resolved_global} and local size {resolved_local} differ in dimensions")
    for g, l in zip(resolved_global, resolved_local):
        if g % l != 0:
            raise SkippableFailure(f"global size {resolved_global} is not a multiple of local size {resolved_local}")
    if max_threads is not None and np.prod(resolved_local) > max_threads:
        raise SkippableFailure(f"local size {resolved_local} exceeds the maximum work-group size {max_threads}")
    return resolved_global, resolved_local


def prepare_kernel_string(kernel_name, kernel_string, params, defines=None):
    """Prepare kernel string for compilation.

    Prepends the kernel with a series of C preprocessor defines, one for each
    tunable parameter of this kernel instance.

    :param kernel_name: Name of the kernel.
    :type kernel_name: string

    :param kernel_string: The source of the kernel as a string containing code.
    :type kernel_string: string

    :param params: A dictionary containing the tunable parameters specific to this instance.
    :type params: dict

    :param defines: Additional preprocessor macros, added after the parameters.
    :type defines: dict or None

    :returns: The kernel name and the source code made specific to this kernel instance.
    :rtype: string, string
    """
    logging.debug("prepare_kernel_string called for %s", kernel_name)

    all_defines = dict(params)
    all_defines["cltuner"] = 1
    if defines:
        all_defines.update(defines)

    kernel_prefix = ""
    for k, v in all_defines.items():
        if not k.isidentifier():
            raise ValueError(f"name is not a valid identifier: {k}")
        v = str(v).replace("\n", "\\\n")
        kernel_prefix += f"#define {k} {v}\n"

    # the defines shift the line numbers, make the compiler count from 1 again
    kernel_prefix += "#line 1\n"

    name = replace_param_occurrences(kernel_name, params)
    return name, kernel_prefix + kernel_string


def read_file(filename):
    """Return the contents of the file named filename or None if file not found."""
    if os.path.isfile(filename):
        with open(filename, "r") as f:
            return f.read()


def replace_param_occurrences(string: str, params: dict):
    """Replace occurrences of the tuning params with their current value."""
    result = ""
    for part in re.split("([a-zA-Z0-9_]+)", string):
        if part in params:
            result += str(params[part])
        else:
            result += part
    return result


def write_file(filename, string):
    """Dump the contents of string to a file called filename."""
    with open(filename, "w", encoding="utf-8") as f:
        f.write(string)


def normalize_verify_function(v):
    """Normalize a user-specified verify function.

    The user-specified function has two required positional arguments (answer, result_host),
    and an optional keyword argument atol. We normalize it to always accept an atol keyword
    argument.
    """
    def has_kw_argument(func, name):
        sig = signature(func)
        return name in sig.parameters

    if v is None:
        return None

    if has_kw_argument(v, "atol"):
        return v
    return lambda answer, result_host, atol: v(answer, result_host)
