"""Configuration model and UAA endpoint resolution."""
