class AppStatusCode:
    """Application level status codes carried in the ``status_code`` field of every envelope."""

    # Success
    DATA_RETRIEVED_SUCCESSFULLY = "100"
    OPERATION_SUCCESSFUL = "101"

    # Generic failures
    OPERATION_FAILED = "200"
    OPERATION_ERROR = "201"
    INVALID_INPUT = "202"
    REQUIRED_VALIDATION_ERROR = "203"
    DUPLICATE_ADD_ERROR = "204"
    NOT_FOUND = "205"
    UNAUTHORIZED_ACTION = "206"

    # Authentication
    AUTHENTICATION_TOKEN_INVALID = "300"
    AUTHENTICATION_TOKEN_EXPIRED = "301"
    AUTHENTICATION_USER_INVALID = "302"
    AUTHENTICATION_UNAUTHORIZED_ACCESS = "303"

    # Signing
    SIGNING_TOKEN_NOT_FOUND = "400"
    SIGNING_TOKEN_EXPIRED = "401"
    SIGNING_ALREADY_SIGNED = "402"
    SIGNING_ALREADY_COUNTERSIGNED = "403"
    SIGNING_INVALID_STATE = "404"
    SIGNING_DOCUMENT_NOT_SIGNABLE = "405"
