"""Framework adapters exposing the drain and dashboard endpoints."""
