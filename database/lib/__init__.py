"""Database support code."""
