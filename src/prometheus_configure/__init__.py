"""Configuration of the Prometheus and BIND services in a Triton Prometheus core zone."""

__version__ = "1.0.0"
