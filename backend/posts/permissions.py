from rest_framework import permissions

from .exceptions import AuthenticationRequired, AuthorizationError


# --- Predicates shared by the post store and the interaction engine ---


def is_authenticated(actor):
    """Any signed-in user may like and comment."""
    return actor is not None and bool(getattr(actor, "is_authenticated", False))


def can_mutate(post, actor):
    """Only the author may edit or delete a post."""
    return is_authenticated(actor) and actor.pk == post.author_id


def ensure_authenticated(actor):
    if not is_authenticated(actor):
        raise AuthenticationRequired()


def ensure_can_mutate(post, actor):
    ensure_authenticated(actor)
    if not can_mutate(post, actor):
        raise AuthorizationError()


# --- DRF permission classes ---


class ReadOnlyOrAuthenticated(permissions.BasePermission):
    """
    Read access for everyone, write access for authenticated users. Whether
    the user is the post's author is decided by the post store, which loads
    the post under a row lock before checking it.
    """

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return is_authenticated(request.user)
