"""
Configuration loading and operator identity.
"""
