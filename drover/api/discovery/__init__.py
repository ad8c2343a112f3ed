"""Discovery control endpoints.

Usage
-----
Import discovery resources for route registration::

    from drover.api.discovery.resources import DiscoveryResource
"""
