"""Logging setup and job run reports."""

from .logger import RunReportFormatter, RunReportLogger, setup_app_logging

__all__ = ["RunReportFormatter", "RunReportLogger", "setup_app_logging"]
