"""
Storage layer for the usage collector.

Holds the data models, the cursor state store, the report writer and the
raw log copies.
"""
