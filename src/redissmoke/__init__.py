"""Smoke tests for a managed Redis service on Cloud Foundry."""

__version__ = "0.1.0"
