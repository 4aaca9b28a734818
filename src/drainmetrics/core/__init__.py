"""Core domain: classification, buffering, aggregation and scheduling."""
