"""Compatibility assessment and platform integration checks."""
