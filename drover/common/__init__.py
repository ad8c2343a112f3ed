"""Shared helpers used across Drover packages."""
