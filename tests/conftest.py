"""
Pytest configuration for asmgr tests.

This module provides shared fixtures and configuration for all tests.
"""

import shutil

import pytest


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end integration test (slow)"
    )
    config.addinivalue_line(
        "markers", "requires_tmux: mark test as requiring tmux"
    )


@pytest.fixture(scope="session")
def tmux_available():
    """Skip the test unless tmux is on PATH"""
    if shutil.which("tmux") is None:
        pytest.skip("tmux not installed or not in PATH")
    return True
