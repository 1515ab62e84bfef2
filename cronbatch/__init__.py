"""Cron-scheduled batch jobs: resource types, admission checks, an in-memory store, reconciler and manager."""

__version__ = "0.1.0"