"""Core infrastructure: configuration, errors, logging and database primitives."""
