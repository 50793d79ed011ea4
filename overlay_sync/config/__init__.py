"""Configuration loading for the state directory."""
