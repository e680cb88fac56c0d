"""Core types — messages, metadata, errors, config and model clients."""
