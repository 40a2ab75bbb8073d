"""Domain models and pure classification logic."""
