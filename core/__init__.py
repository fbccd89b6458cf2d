"""Core module - shared models, configuration, audit and observability.

Everything the reconciliation engine, the record store, the HTTP API and the
Temporal closeout workflow have in common lives here.
"""

__version__ = "1.0.0"
