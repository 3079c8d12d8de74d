"""
Command-line interface for the usage collector.
"""
