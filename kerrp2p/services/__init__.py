"""
kerrp2p Service Layer: KerrService ABC and ServiceRegistry.

Every HTTP-facing capability is a KerrService registered with the
ServiceRegistry at app startup. A service validates its requests, runs
the engine and mounts its endpoints on the /api blueprint; the registry
holds services in registration order and describes them for /api/services.

Classes:
    KerrService     - Abstract base class for all services
    ServiceRegistry - Ordered container of registered services

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

from abc import ABC, abstractmethod


class KerrService(ABC):
    """
    Abstract base class for a kerrp2p service.

    Class Attributes
    ----------------
    id : str
        Unique service identifier (e.g. "imaging").
    name : str
        Human-readable display name.
    description : str
        One-liner for service listings.
    endpoints : tuple of str
        "METHOD /api/path" entries mounted by register_routes().
    """

    id = ""
    name = ""
    description = ""
    endpoints = ()

    @abstractmethod
    def validate(self, config):
        """
        Validate a raw request payload and return a normalized config dict.

        Raises
        ------
        ValueError
            If the payload is invalid. Routes answer 400 with the message.
        """

    @abstractmethod
    def compute(self, config):
        """Run the computation for a config from validate(); JSON-ready dict."""

    @abstractmethod
    def register_routes(self, blueprint):
        """
        Mount the service's endpoints onto the /api blueprint.

        Parameters
        ----------
        blueprint : flask.Blueprint
        """

    def metadata(self):
        """Service info: id, name, description, endpoints."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "endpoints": list(self.endpoints),
        }


class ServiceRegistry:
    """Registered KerrService instances, keyed by id, in registration order."""

    def __init__(self):
        self._services = {}

    def __iter__(self):
        return iter(self._services.values())

    def __len__(self):
        return len(self._services)

    def register(self, service):
        """
        Register a service instance.

        Raises
        ------
        ValueError
            If a service with the same id is already registered.
        """
        if service.id in self._services:
            raise ValueError(
                "Service '{}' is already registered".format(service.id)
            )
        self._services[service.id] = service

    def list_all(self):
        """Metadata for all registered services, in registration order."""
        return [s.metadata() for s in self._services.values()]
