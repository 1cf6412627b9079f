import logging

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from rest_framework import status

from posts.views import get_actor, list_params, post_store, render_page
from .serializers import PublicUserSerializer, UserSerializer, UserSerializerWithToken
from .models import User

logger = logging.getLogger(__name__)


@api_view(["POST"])
@permission_classes([AllowAny])
def registerUser(request):
    serializer = UserSerializerWithToken(data=request.data)

    if serializer.is_valid():
        # save() goes through UserSerializer.create(), which hashes the password
        user = serializer.save()
        logger.info("User registered.", extra={"user_id": user.pk})
        return Response(serializer.data, status=status.HTTP_201_CREATED)

    # Missing fields, invalid emails and duplicate emails all land here
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(["GET", "PATCH"])
@permission_classes([IsAuthenticated])
def userProfile(request):
    user = request.user

    if request.method == "GET":
        serializer = UserSerializer(user)
        return Response(serializer.data)

    serializer = UserSerializer(user, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def userStats(request):
    """Totals over the current user's posts for the dashboard."""
    return Response(post_store().author_stats(request.user))


@api_view(["GET"])
@permission_classes([AllowAny])
def userDetail(request, pk):
    user = get_object_or_404(User, pk=pk, is_active=True)
    serializer = PublicUserSerializer(user)
    return Response(serializer.data)


@api_view(["GET"])
@permission_classes([AllowAny])
def userPosts(request, pk):
    """Posts by one author. Authors listing themselves also see their drafts."""
    user = get_object_or_404(User, pk=pk, is_active=True)
    page = post_store().list_posts(
        actor=get_actor(request),
        author_id=user.pk,
        **list_params(request),
    )
    return Response(render_page(page))
