"""Shared helpers: configuration, evaluation, image I/O, randomness and progress output."""
