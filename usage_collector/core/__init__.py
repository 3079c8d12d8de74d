"""
Core modules for the usage collector.

This package contains line extraction, aggregation, the ingestion
pipeline, reconciliation and scheduling.
"""
