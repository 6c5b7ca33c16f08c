"""
Shared pytest fixtures for the volume attach controller test suite

Provides:
- AWS credential isolation for moto
- Repository root on sys.path so tests run without installing
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


# Test configuration
TEST_AWS_REGION = "us-east-1"


@pytest.fixture(scope="session")
def aws_credentials():
    """Mock AWS credentials for moto"""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = TEST_AWS_REGION
