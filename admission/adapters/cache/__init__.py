"""Clients for the shared counter/cache service."""
