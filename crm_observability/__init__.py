"""Observability and alerting engine for the CRM backend.

Ingests performance, API, cache and error events into bounded in-memory
buffers, evaluates alert thresholds, enforces per-caller rate limits and runs
recurring report jobs over the collected metrics.
"""

__version__ = "0.1.0"
