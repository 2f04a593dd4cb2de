"""Shared billing core for the conto services."""
