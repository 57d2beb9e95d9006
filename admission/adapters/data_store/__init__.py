"""Data store adapters.

Services depend on ``AbstractDataStore`` so tests can substitute an
in-process fake for the hosted platform.
"""
