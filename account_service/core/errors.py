"""Domain error classes.

Every error raised by the account core derives from AccountError. Callers at
the HTTP boundary translate them into responses using ``status_code``.

WHY CUSTOM ERROR CLASSES:
- Storage vocabulary (constraint names, SQLSTATE codes) never reaches callers
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""


class AccountError(Exception):
    """Base class for account domain errors.

    All account errors have a code, message, and suggested HTTP status.

    Attributes:
        code: Machine-readable error code (e.g., "ACCOUNT_NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code the caller should return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class FieldNotQueriedError(AttributeError):
    """A projection field was read without being requested.

    Programming error, not a domain error: the caller asked a query for a
    subset of fields and then read one outside that subset.
    """

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Field '{field}' was not queried")


# =============================================================================
# Not found (404)
# =============================================================================


class AccountNotFoundError(AccountError):
    """No account row matches the given id (or email, for lookups by email)."""

    def __init__(
        self, account_id: int | None = None, *, email: str | None = None
    ) -> None:
        self.account_id = account_id
        self.email = email
        if email is not None:
            message = f"Account with email '{email}' does not exist"
            details = [{"email": email}]
        else:
            message = f"Account with id '{account_id}' does not exist"
            details = [{"id": account_id}]
        super().__init__(
            code="ACCOUNT_NOT_FOUND",
            message=message,
            status_code=404,
            details=details,
        )


class CredentialNotFoundError(AccountError):
    """No credential row matches the given id."""

    def __init__(self, credential_id: int) -> None:
        self.credential_id = credential_id
        super().__init__(
            code="CREDENTIAL_NOT_FOUND",
            message=f"Credential with id '{credential_id}' does not exist",
            status_code=404,
            details=[{"id": credential_id}],
        )


class CredentialNotPresentError(AccountError):
    """The account has no default (email + password) login."""

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(
            code="CREDENTIAL_NOT_PRESENT",
            message=f"Account with id '{account_id}' has no default login",
            status_code=404,
            details=[{"id": account_id}],
        )


# =============================================================================
# Conflict (409)
# =============================================================================


class ChangeAlreadyInProgressError(AccountError):
    """A second change was attempted while one is still pending."""

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(
            code="CHANGE_ALREADY_IN_PROGRESS",
            message=(
                f"Account with id '{account_id}' already has a change in progress"
            ),
            status_code=409,
            details=[{"id": account_id}],
        )


class DuplicateEmailError(AccountError):
    """Another account already uses this email address."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(
            code="DUPLICATE_EMAIL",
            message=f"An account with the email address '{email}' already exists",
            status_code=409,
            details=[{"email": email}],
        )


class CredentialAlreadyPresentError(AccountError):
    """The account already has a default login."""

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(
            code="CREDENTIAL_ALREADY_PRESENT",
            message=f"Account with id '{account_id}' already has a default login",
            status_code=409,
            details=[{"id": account_id}],
        )


# =============================================================================
# Invalid input (400)
# =============================================================================


class InvalidNicknameError(AccountError):
    """Nickname rejected by the storage format constraint."""

    def __init__(self, nickname: str) -> None:
        self.nickname = nickname
        super().__init__(
            code="INVALID_NICKNAME",
            message=f"Nickname '{nickname}' is invalid",
            status_code=400,
            details=[{"nickname": nickname}],
        )


class InvalidEmailError(AccountError):
    """Email rejected by the storage format constraint."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(
            code="INVALID_EMAIL",
            message=f"Email '{email}' is invalid",
            status_code=400,
            details=[{"email": email}],
        )


class InvalidLoginStateError(AccountError):
    """The operation would leave the account without any login."""

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(
            code="INVALID_LOGIN_STATE",
            message=f"Account with id '{account_id}' would be left without a login",
            status_code=400,
            details=[{"id": account_id}],
        )


# =============================================================================
# Tokens and credentials
# =============================================================================


class InvalidChangeTokenError(AccountError):
    """No account has a pending change with this token.

    Raised for unknown tokens as well as already-redeemed ones.
    """

    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(
            code="INVALID_CHANGE_TOKEN",
            message="Change token is invalid",
            status_code=404,
        )


class InvalidCredentialsError(AccountError):
    """Login failed.

    Deliberately uninformative: does not say whether the email, the password,
    or the session token was wrong.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_CREDENTIALS",
            message="The credentials do not identify an account",
            status_code=401,
        )


# =============================================================================
# Unexpected (500)
# =============================================================================


class UnexpectedStorageError(AccountError):
    """Storage failure that no declared matcher recognised.

    The raw detail is kept on the instance for logging only. The message and
    details exposed to callers are generic.

    Attributes:
        sqlstate: SQLSTATE / driver error code if the driver reported one.
        error_type: Class name of the underlying driver error.
        raw_message: Driver error message.
    """

    def __init__(
        self,
        *,
        sqlstate: str | None = None,
        error_type: str | None = None,
        raw_message: str | None = None,
    ) -> None:
        self.sqlstate = sqlstate
        self.error_type = error_type
        self.raw_message = raw_message
        super().__init__(
            code="UNEXPECTED_STORAGE_ERROR",
            message="An unexpected storage error occurred",
            status_code=500,
        )
