import bleach
from rest_framework import serializers
from django.contrib.auth import get_user_model

from .models import COMMENT_MAX_LENGTH, EXCERPT_MAX_LENGTH, TITLE_MAX_LENGTH, Comment, Post
from .services import InteractionEngine

# --- Setup ---
User = get_user_model()

# Formatting the rich-text editor produces; everything else is stripped.
ALLOWED_TAGS = set(bleach.sanitizer.ALLOWED_TAGS) | {
    "p", "br", "hr", "span", "div", "pre",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "u", "s", "sub", "sup", "img",
}
ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel", "target"],
    "img": ["src", "alt", "title", "width", "height"],
    "span": ["class"],
    "div": ["class"],
    "pre": ["class"],
    "p": ["class"],
}
ALLOWED_PROTOCOLS = ["http", "https", "mailto", "data"]


def sanitize_html(value):
    return bleach.clean(
        value,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )


# --- Helper Serializers ---


class AuthorSerializer(serializers.ModelSerializer):
    """Minimal serializer for displaying the Post/Comment author."""

    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ("id", "email", "full_name")
        read_only_fields = fields

    def get_full_name(self, obj):
        return obj.get_full_name()


# ------------------------------------
# --- Comment Serializers ---
# ------------------------------------


class CommentSerializer(serializers.ModelSerializer):
    author = AuthorSerializer(read_only=True)

    class Meta:
        model = Comment
        fields = ("id", "author", "content", "created_at")
        read_only_fields = fields


class CommentWriteSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=COMMENT_MAX_LENGTH)


# ------------------------------------
# --- Post Serializers ---
# ------------------------------------


# ----------------- 1. BASE/LIST SERIALIZER -----------------
class PostListSerializer(serializers.ModelSerializer):
    author = AuthorSerializer(read_only=True)
    tags = serializers.ListField(source="tag_names", child=serializers.CharField(), read_only=True)
    read_time = serializers.IntegerField(read_only=True)
    url = serializers.SerializerMethodField()

    class Meta:
        model = Post
        fields = (
            "id",
            "author",
            "title",
            "slug",
            "excerpt",
            "tags",
            "featured_image",
            "is_published",
            "view_count",
            "like_count",
            "comment_count",
            "read_time",
            "url",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_url(self, obj):
        return f"/posts/{obj.slug}/"


# ----------------- 2. DETAIL SERIALIZER -----------------
class PostDetailSerializer(PostListSerializer):
    comments = CommentSerializer(many=True, read_only=True)
    likes = serializers.SerializerMethodField()
    liked = serializers.SerializerMethodField()

    class Meta(PostListSerializer.Meta):
        fields = PostListSerializer.Meta.fields + (
            "content",
            "comments",
            "likes",
            "liked",
        )
        read_only_fields = fields

    def get_likes(self, obj):
        """Ids of the users who like the post."""
        return [user.pk for user in obj.likes.all()]

    def get_liked(self, obj):
        return InteractionEngine.has_liked(obj, self.context.get("actor"))


# ----------------- 3. Write SERIALIZER -----------------
class PostWriteSerializer(serializers.Serializer):
    """
    Request body for creating (POST) and updating (PUT/PATCH) a post.
    The author, slug and counters are never accepted from the client.
    """

    title = serializers.CharField(max_length=TITLE_MAX_LENGTH)
    content = serializers.CharField()
    tags = serializers.ListField(
        child=serializers.CharField(max_length=50, allow_blank=True),
        required=False,
    )
    featured_image = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    excerpt = serializers.CharField(max_length=EXCERPT_MAX_LENGTH, required=False, allow_blank=True)
    is_published = serializers.BooleanField(required=False)

    def validate_content(self, value):
        cleaned = sanitize_html(value).strip()
        if not cleaned:
            raise serializers.ValidationError("Content must not be empty.")
        return cleaned
