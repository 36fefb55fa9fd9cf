"""Search and materialization of time series stored in in-memory columnar tables."""

__version__ = "0.1.0"