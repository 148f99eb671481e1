"""Benchmark harness comparing sequential, pipelined and parallel SET/GET."""

__version__ = "0.1.0"
