"""Liveness and readiness checks.

Usage
-----
Import health resources for route registration::

    from drover.api.health.resources import HealthResource, ReadyResource
"""
