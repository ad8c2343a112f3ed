"""Batch lifecycle endpoints."""
