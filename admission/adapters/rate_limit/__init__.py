"""Rate limiting backends.

Three places can hold sliding-window state, tried in this order:
the shared cache service, the data store's atomic procedure, and a
process-local map. Only the first two are correct across instances.
"""
