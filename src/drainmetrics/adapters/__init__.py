"""Adapters connecting the core to storage and HTTP frameworks."""
