"""Shared helpers: errors, logging, HTTP access and platform naming."""
