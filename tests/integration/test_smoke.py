#!/usr/bin/env python
"""
Smoke tests for verifying a deployed service is functional.

These tests run against a live server. The service URL can be passed
as a command-line argument or via SERVICE_HOST/SERVICE_PORT env vars.
Under pytest they are skipped unless SERVICE_HOST is set.

Usage:
    python test_smoke.py http://host:port
    python test_smoke.py  # Uses SERVICE_HOST/SERVICE_PORT env vars
"""

import os
import sys

import httpx
import pytest

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not os.environ.get("SERVICE_HOST"), reason="SERVICE_HOST not set"),
]


def get_service_url():
    """Get the service URL from command line args or environment variables."""
    if __name__ == "__main__" and len(sys.argv) > 1:
        return sys.argv[1].rstrip("/")

    host = os.environ.get("SERVICE_HOST", "localhost")
    port = os.environ.get("SERVICE_PORT", "8000")
    return f"http://{host}:{port}"


SERVICE_URL = get_service_url()


def test_health_endpoint():
    """Verify the health endpoint returns healthy status."""
    response = httpx.get(f"{SERVICE_URL}/health", timeout=10)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    print(f"Health check passed: {data}")


def test_tools_endpoint():
    """Verify the tool catalogue is served."""
    response = httpx.get(f"{SERVICE_URL}/api/tools", timeout=10)
    assert response.status_code == 200
    assert "tools" in response.json()
    print(f"Tools available: {len(response.json()['tools'])}")


def test_chat_rejects_empty_message():
    """Verify request validation without spending a model call."""
    response = httpx.post(f"{SERVICE_URL}/api/chatbot", json={"message": ""}, timeout=10)
    assert response.status_code == 400
    assert response.json()["message"] == "Message is required and must be a string"


def test_openapi_docs_available():
    """Verify the OpenAPI docs endpoint is accessible."""
    response = httpx.get(f"{SERVICE_URL}/openapi.json", timeout=10)
    assert response.status_code == 200
    data = response.json()
    assert "openapi" in data
    assert "/api/chatbot" in data["paths"]
    print("OpenAPI docs available")


if __name__ == "__main__":
    print(f"Running smoke tests against {SERVICE_URL}")

    test_health_endpoint()
    test_tools_endpoint()
    test_chat_rejects_empty_message()
    test_openapi_docs_available()

    print("All smoke tests passed!")
