"""Identity error taxonomy.

Learn: Every rejection the identity service can produce is its own
exception class with a stable machine-readable ``code`` and the HTTP
status the gateway maps it to. Callers may treat several of them the
same way (all 401s), but they are never conflated in logs — the code
is what gets logged.
"""


class IdentityError(Exception):
    """Base class for all identity-service failures."""

    code = "identity_error"
    status_code = 400
    default_message = "Authentication error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EmailTakenError(IdentityError):
    code = "email_taken"
    status_code = 400
    default_message = "Email already registered"


class InvalidCredentialsError(IdentityError):
    """Unknown email or wrong password — deliberately indistinguishable."""

    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid credentials"


class InvalidTokenError(IdentityError):
    """Bad signature, malformed token, or missing/unknown claims."""

    code = "invalid_token"
    status_code = 401
    default_message = "Invalid token"


class ExpiredTokenError(IdentityError):
    """Well-formed token whose embedded expiry has passed."""

    code = "expired_token"
    status_code = 401
    default_message = "Token has expired"


class WrongTokenKindError(IdentityError):
    code = "wrong_token_kind"
    status_code = 401
    default_message = "Wrong token type"


class TokenNotFoundError(IdentityError):
    """Refresh token has no ledger record: rotated, logged out, or forged."""

    code = "token_not_found"
    status_code = 401
    default_message = "Refresh token not recognized"


class RefreshTokenExpiredError(IdentityError):
    """Ledger record exists but its own expiry has passed."""

    code = "refresh_token_expired"
    status_code = 401
    default_message = "Refresh token has expired"


class StoreUnavailableError(IdentityError):
    """Database fault or timeout. Message never carries internal detail."""

    code = "store_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable"


class LedgerConflictError(IdentityError):
    """A refresh token string was inserted twice. Never expected in practice."""

    code = "ledger_conflict"
    status_code = 500
    default_message = "Could not record refresh token"
