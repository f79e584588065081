"""
Shared helpers for newtab-auth examples.

Health check and a few thin wrappers around the token endpoints so each
example can focus on its flow.
"""

import sys

import httpx

BASE = "http://localhost:8000/api"


def check_backend() -> None:
    """Verify the auth service is reachable and its database is up."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Auth service not reachable at {BASE}")
        print("Start it with:  cd packages/backend && uvicorn newtab_auth.main:app --reload --port 8000")
        sys.exit(1)

    health = resp.json()
    print("Auth service health:")
    print(f"  Server:   {health['server']}")
    print(f"  Database: {health['database']}")

    if health["database"] != "ok":
        print("\nERROR: Database is not connected.")
        sys.exit(1)


def expect(resp: httpx.Response, status: int, what: str) -> dict:
    """Exit with the error envelope unless ``resp`` has ``status``."""
    if resp.status_code != status:
        print(f"ERROR: {what} failed: {resp.status_code} {resp.text}")
        sys.exit(1)
    return resp.json() if resp.content else {}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
