"""Implementations behind the lily-client CLI commands."""
