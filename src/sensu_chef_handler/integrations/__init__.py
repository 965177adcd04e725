"""API clients for the Chef Server and the Sensu backend."""

from .chef import ChefAuth, ChefClient, load_private_key
from .sensu import ResourceRequest, SensuClient, load_ca_certificate

__all__ = [
    "ChefAuth",
    "ChefClient",
    "load_private_key",
    "ResourceRequest",
    "SensuClient",
    "load_ca_certificate",
]
