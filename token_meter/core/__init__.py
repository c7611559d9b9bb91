"""
Core modules for Token Meter.

This package contains usage aggregation, the metrics query boundary
and API key hashing.
"""
