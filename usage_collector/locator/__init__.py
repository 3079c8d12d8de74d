"""
Discovery of editor log files on disk.
"""
