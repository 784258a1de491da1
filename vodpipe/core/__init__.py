"""Core infrastructure: configuration, logging, metrics, tracing and persistence."""
