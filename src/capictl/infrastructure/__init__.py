"""Cross-cutting error and logging infrastructure."""
