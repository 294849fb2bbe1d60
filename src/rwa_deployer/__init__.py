"""Token deployment and transaction confirmation pipeline for RWA contracts."""

__version__ = "0.1.0"
