"""Robogo - declarative test-automation engine.

Runs YAML-defined test cases as ordered steps, grouping independent steps for
parallel execution and wrapping each action in retry, circuit-breaker and
recovery policies.
"""

__version__ = "0.1.0"
