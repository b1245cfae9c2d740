"""
AdherenceHub Test Suite
=======================

Test Structure:
- test_tools/: dose clock, TTL cache and change feed
- test_services/: schedule, adherence, refill and notification services
- test_actions/: reminder engine sweeps
- test_api/: API endpoint tests for FastAPI routes
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "api"
"""

# Test configuration
TEST_DATABASE_URL = "sqlite:///:memory:"

__all__ = [
    "TEST_DATABASE_URL",
]
