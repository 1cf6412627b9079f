"""
Errors raised by the post store and the interaction engine.

They are DRF exceptions, so views let them propagate and DRF's exception
handler turns them into responses:

ValidationError         400  a field violates its constraint
AuthenticationRequired  401  no acting user
AuthorizationError      403  acting user may not perform the mutation
NotFound                404  no post for the given slug or id
ConflictError           409  no free slug within the suffix limit
"""

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, PermissionDenied, ValidationError

__all__ = [
    "AuthenticationRequired",
    "AuthorizationError",
    "ConflictError",
    "NotFound",
    "ValidationError",
]


class AuthorizationError(PermissionDenied):
    default_detail = "You are not allowed to modify this post."
    default_code = "not_author"


class AuthenticationRequired(AuthorizationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication credentials were not provided."
    default_code = "not_authenticated"


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Could not allocate a unique slug for this title."
    default_code = "slug_conflict"
