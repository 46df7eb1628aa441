"""cloudwait: declarative Route53 health checks and Athena databases."""

__version__ = "0.1.0"
