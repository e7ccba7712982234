"""MeowLah proximity alert & boost-lifecycle engine."""

__version__ = "0.4.0"
