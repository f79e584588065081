"""Authentication building blocks.

Learn: Everything the identity service composes lives here:
- jwt.py          token codec (access + refresh JWTs, TokenClaims)
- password.py     bcrypt hashing
- credentials.py  credential store + verifier (users table)
- ledger.py       refresh token ledger (refresh_tokens table)
- store.py        timeout / fault mapping shared by both stores
- errors.py       the identity error taxonomy
- dependencies.py FastAPI Depends() wiring for the routes
"""
