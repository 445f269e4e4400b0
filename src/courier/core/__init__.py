"""Configuration, security and logging primitives."""
