#!/usr/bin/env python3
"""
newtab-auth Quickstart — the whole token lifecycle in one script.

Guest → register → login → validate → refresh (rotation) → logout.
Run with: python examples/quickstart.py

Requires: pip install httpx
Auth service must be running: http://localhost:8000
"""

import uuid

import httpx

from _common import BASE, bearer, check_backend, expect


def main():
    run_id = uuid.uuid4().hex[:8]
    email = f"demo-{run_id}@example.com"
    password = "demo-password-123"

    check_backend()
    client = httpx.Client(base_url=f"{BASE}/auth", timeout=10)

    # ── Guest ─────────────────────────────────────────────────────
    print("\n1. Getting guest tokens...")
    guest = expect(client.post("/guest"), 200, "Guest")
    print(f"   Guest alias: {guest['email']}")

    # ── Register (and again, to see the duplicate check) ──────────
    print("\n2. Registering account...")
    expect(client.post("/register", json={"email": email, "password": password}), 200, "Register")
    print(f"   Registered: {email}")

    resp = client.post("/register", json={"email": email, "password": "other"})
    print(f"   Duplicate register → {resp.status_code} ({resp.json()['code']})")

    # ── Login ─────────────────────────────────────────────────────
    print("\n3. Logging in...")
    resp = client.post("/login", json={"email": email, "password": "wrong"})
    print(f"   Wrong password → {resp.status_code} ({resp.json()['code']})")
    tokens = expect(client.post("/login", json={"email": email, "password": password}), 200, "Login")
    print(f"   Role: {tokens['userType']}")

    # ── Validate ──────────────────────────────────────────────────
    print("\n4. Validating access token...")
    resp = client.get("/validate", headers=bearer(tokens["token"]))
    expect(resp, 200, "Validate")
    print(f"   X-User-Email: {resp.headers['X-User-Email']}")
    print(f"   X-User-Type:  {resp.headers['X-User-Type']}")

    # ── Refresh (rotation) ────────────────────────────────────────
    print("\n5. Rotating refresh token...")
    old_refresh = tokens["refreshToken"]
    tokens = expect(client.post("/refresh", json={"refreshToken": old_refresh}), 200, "Refresh")
    print("   New pair issued")

    resp = client.post("/refresh", json={"refreshToken": old_refresh})
    print(f"   Replaying old refresh token → {resp.status_code} ({resp.json()['code']})")

    # ── Logout ────────────────────────────────────────────────────
    print("\n6. Logging out...")
    expect(client.post("/logout", json={"refreshToken": tokens["refreshToken"]}), 204, "Logout")
    resp = client.post("/refresh", json={"refreshToken": tokens["refreshToken"]})
    print(f"   Refresh after logout → {resp.status_code} ({resp.json()['code']})")

    print("\nDone.")


if __name__ == "__main__":
    main()
