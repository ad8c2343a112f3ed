"""Repository lifecycle endpoints."""
