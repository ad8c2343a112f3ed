"""Dependency graph and export endpoints."""
