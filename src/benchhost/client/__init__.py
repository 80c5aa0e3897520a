"""Suite-side runtime: define suites and run them inside an executor."""

from benchhost.client.profiling import Profiler, ProfilingContext
from benchhost.client.runner import run_suite, run_suites
from benchhost.client.suite import BenchCase, BenchmarkSuite, Scene, ValidateOptions, define_suite

__all__ = [
    "BenchCase",
    "BenchmarkSuite",
    "Profiler",
    "ProfilingContext",
    "Scene",
    "ValidateOptions",
    "define_suite",
    "run_suite",
    "run_suites",
]
