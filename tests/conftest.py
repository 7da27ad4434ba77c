"""
Pytest fixtures for the kerrp2p test suite.
"""

import pytest

from app import create_app
from kerrp2p.engine import EngineConfig, RayTracingEngine
from kerrp2p.pool import InstancePool
from synthetic_oracles import ConfinedRayTracer, LinearRayTracer


@pytest.fixture
def linear_pool():
    """Pool of LinearRayTracer contexts at float64."""
    return InstancePool(LinearRayTracer)


@pytest.fixture
def confined_pool():
    """Pool of ConfinedRayTracer contexts at float64."""
    return InstancePool(ConfinedRayTracer)


@pytest.fixture
def engine():
    """Engine over the linear synthetic Oracle with two workers."""
    return RayTracingEngine(LinearRayTracer, EngineConfig(max_workers=2))


@pytest.fixture
def app(engine):
    """Create application for testing."""
    app = create_app(engine)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()
