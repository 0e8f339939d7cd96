"""Execution policies."""
