"""
Editor Usage Collector.

Scans editor log files, extracts usage events and keeps daily JSON reports.
"""

__version__ = "0.1.0"
