"""Configuration file loaders."""
