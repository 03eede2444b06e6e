"""
eventops_kernel -- Shared infrastructure for the eventops batch engine.

Provides the injectable clock, the typed exception hierarchy, structured
JSON logging and the SQLAlchemy base/engine used by the job registry.

Architecture:
    eventops_kernel imports nothing from eventops_batch or eventops_config.
"""
