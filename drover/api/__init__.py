"""Falcon ASGI HTTP surface for the Drover control plane.

Resources translate requests into service calls and map the
:class:`~drover.errors.DroverError` taxonomy onto HTTP statuses.
"""

from drover.api.app import API_PREFIX, AppDependencies, create_app

__all__ = ["API_PREFIX", "AppDependencies", "create_app"]
