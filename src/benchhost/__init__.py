"""benchhost — build, run and compare benchmark suites across toolchains."""

__version__ = "0.3.0"
