"""Kubernetes operator reconciling custom resources against the MongoDB Atlas Admin API."""

__version__ = "0.1.0"
