from django.apps import apps
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from .permissions import ReadOnlyOrAuthenticated
from .serializers import (
    PostListSerializer,
    PostDetailSerializer,
    PostWriteSerializer,
    CommentWriteSerializer,
)

# Errors raised by the stores (NotFound, AuthorizationError, ...) are DRF
# exceptions and are rendered by DRF's exception handler.


def post_store():
    return apps.get_app_config("posts").post_store


def interaction_engine():
    return apps.get_app_config("posts").interaction_engine


def get_actor(request):
    """The signed-in user, or None for anonymous requests."""
    user = request.user
    return user if user and user.is_authenticated else None


def render_post(post, actor, status_code=status.HTTP_200_OK):
    serializer = PostDetailSerializer(post, context={"actor": actor})
    return Response(serializer.data, status=status_code)


def render_page(page):
    return {
        "items": PostListSerializer(page.items, many=True).data,
        "total_count": page.total_count,
        "total_pages": page.total_pages,
        "page": page.page,
        "page_size": page.page_size,
        "has_next": page.has_next,
        "has_previous": page.has_previous,
    }


def list_params(request):
    """Listing filters taken from the query string."""
    params = request.query_params
    return {
        "search": params.get("search"),
        "tag": params.get("tag"),
        "page": params.get("page", 1),
        "page_size": params.get("page_size") or params.get("limit"),
        "ordering": params.get("ordering"),
    }


# ---  Post Views ---


@api_view(["GET", "POST"])
@permission_classes([ReadOnlyOrAuthenticated])
def post_list_create(request):
    """
    GET: List published posts, filtered and paginated.
    POST: Create a new post (authenticated users).
    """
    actor = get_actor(request)

    if request.method == "GET":
        page = post_store().list_posts(
            actor=actor,
            author_id=request.query_params.get("author"),
            **list_params(request),
        )
        return Response(render_page(page))

    serializer = PostWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    post = post_store().create_post(actor, **serializer.validated_data)
    return render_post(post, actor, status.HTTP_201_CREATED)


@api_view(["GET", "PUT", "PATCH", "DELETE"])
@permission_classes([ReadOnlyOrAuthenticated])
def post_detail(request, key):
    """
    GET: Retrieve a post by slug or id and count the view.
    PUT/PATCH/DELETE: Update/Delete the post (author only).
    """
    actor = get_actor(request)

    if request.method == "GET":
        post = post_store().get_post(key, actor=actor)
        return render_post(post, actor)

    if request.method in ["PUT", "PATCH"]:
        partial = request.method == "PATCH"
        serializer = PostWriteSerializer(data=request.data, partial=partial)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        post = post_store().update_post(key, actor, serializer.validated_data)
        return render_post(post, actor)

    post_store().delete_post(key, actor)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def post_edit(request, pk):
    """GET: Load a post into the editor. Does not count as a view."""
    actor = get_actor(request)
    post = post_store().get_post_for_edit(pk, actor)
    return render_post(post, actor)


# --- Interaction Views ---


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def post_like(request, pk):
    """POST: Toggle the current user's like. Sending it twice undoes it."""
    actor = get_actor(request)
    post = interaction_engine().toggle_like(pk, actor)
    return render_post(post, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def comment_create(request, pk):
    """POST: Append a comment to the post."""
    actor = get_actor(request)
    serializer = CommentWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    post = interaction_engine().add_comment(pk, actor, serializer.validated_data["content"])
    return render_post(post, actor, status.HTTP_201_CREATED)
