"""Core infrastructure: configuration, logging, errors, persistence and DI."""
