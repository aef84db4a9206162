import re
from setuptools import setup


def version():
    with open("cltuner/__init__.py") as fp:
        match = re.search(r"__version__\s*=\s*['\"]([^'\"]+)", fp.read())

    if not match:
        raise RuntimeError("unable to find __version__ string in __init__.py")

    return match[1]


def readme():
    with open("README.rst") as f:
        return f.read()


setup(
    name="cltuner",
    version=version(),
    description=("Auto-tuner for parameterized OpenCL kernels"),
    license="Apache 2.0",
    keywords="auto-tuning gpu computing pyopencl opencl",
    packages=[
        "cltuner",
        "cltuner.backends",
        "cltuner.observers",
        "cltuner.strategies",
    ],
    long_description=readme(),
    long_description_content_type="text/x-rst",
    classifiers=[
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: Apache Software License",
        "Natural Language :: English",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering",
        "Topic :: Software Development",
    ],
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.13.3",
        "python-constraint2",
    ],
    extras_require={
        "opencl": ["pyopencl"],
        "test": [
            "mock>=2.0.0",
            "pytest>=3.0.3",
        ],
        "dev": [
            "mock>=2.0.0",
            "pytest>=3.0.3",
            "pylint>=1.7.1",
        ],
    },
)
