"""
Core models, configuration, errors and resilience primitives.
"""
