class AuthorizationError(Exception):
    """Raised when an operation is requested without an authenticated owner"""
    pass


class TransactionNotFoundError(Exception):
    """Raised when a transaction does not exist for the requesting owner"""
    pass


def require_user(user_id) -> str:
    if not user_id:
        raise AuthorizationError("Not authenticated")
    return str(user_id)
