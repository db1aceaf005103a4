"""Configuration loading and constants for capictl."""
