"""
Tests for the CarePortal API.

The clinic backend is replaced by ``FakeBackend`` from ``conftest``.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
