"""
Utility modules for the upload pipeline.

This package provides shared utilities used across all pipeline stages:
- logging: Structured logging with entry/exit decorators
- config_loader: Property file reading and Config building
- credentials: Project scoped AWS credentials
- retry: Exponential backoff for transient store failures
- metrics: Prometheus collectors
"""

from s3upload.utils.logging import get_logger, log_function_call

__all__ = ["get_logger", "log_function_call"]
