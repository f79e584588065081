"""newtab-auth — identity and token service.

Issues access/refresh tokens for guest and registered users, rotates
refresh tokens against a persistent ledger, and validates access tokens
at the gateway so downstream services can trust the forwarded identity.
"""

__version__ = "0.1.0"
