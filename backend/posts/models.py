import math
import re

from django.conf import settings
from django.db import models
from django.utils.html import strip_tags
from django.utils.text import Truncator, slugify

# We reference the custom User model using settings.AUTH_USER_MODEL
User = settings.AUTH_USER_MODEL

TITLE_MAX_LENGTH = 200
SLUG_MAX_LENGTH = 220
EXCERPT_MAX_LENGTH = 300
COMMENT_MAX_LENGTH = 2000
WORDS_PER_MINUTE = 200

_WHITESPACE = re.compile(r"\s+")


def plain_text(html):
    """Body text with markup removed and whitespace collapsed."""
    return _WHITESPACE.sub(" ", strip_tags(html or "")).strip()


def slug_base(title):
    """
    The slug a title maps to before any collision suffix is added.

    Titles made only of punctuation slugify to the empty string, so they
    fall back to "post".
    """
    base = slugify(title or "")[:SLUG_MAX_LENGTH - 10].strip("-")
    return base or "post"


def derive_excerpt(html):
    return Truncator(plain_text(html)).chars(EXCERPT_MAX_LENGTH)


class Tag(models.Model):
    name = models.CharField(max_length=50, unique=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Post(models.Model):
    # The author is fixed at creation; nothing in the API writes this field afterwards.
    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name="posts",
    )

    # Essential post fields
    title = models.CharField(max_length=TITLE_MAX_LENGTH)
    slug = models.SlugField(max_length=SLUG_MAX_LENGTH, unique=True)
    content = models.TextField()
    excerpt = models.CharField(max_length=EXCERPT_MAX_LENGTH, blank=True)
    featured_image = models.TextField(blank=True)
    tags = models.ManyToManyField(
        Tag,
        through="PostTag",
        related_name="posts",
        blank=True,
    )
    is_published = models.BooleanField(default=True)

    # Denormalized counters. like_count and comment_count are only written
    # by the interaction engine, inside the transaction that changes the
    # underlying rows.
    view_count = models.PositiveIntegerField(default=0)
    like_count = models.PositiveIntegerField(default=0)
    comment_count = models.PositiveIntegerField(default=0)
    likes = models.ManyToManyField(
        User,
        related_name="liked_posts",
        blank=True,
    )

    # Management fields
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name = "Post"
        verbose_name_plural = "Posts"

    def __str__(self):
        return self.title

    @property
    def tag_names(self):
        """Tag names in the order the author gave them."""
        return [link.tag.name for link in self.post_tags.all()]

    @property
    def read_time(self):
        words = len(plain_text(self.content).split())
        return max(1, math.ceil(words / WORDS_PER_MINUTE))

    def set_tags(self, names):
        """
        Replace the post's tag sequence. ``names`` must already be normalized.
        """
        db = self._state.db
        self.post_tags.all().delete()
        links = []
        for position, name in enumerate(names):
            tag, _ = Tag.objects.db_manager(db).get_or_create(name=name)
            links.append(PostTag(post=self, tag=tag, position=position))
        PostTag.objects.using(db).bulk_create(links)


class PostTag(models.Model):
    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="post_tags")
    tag = models.ForeignKey(Tag, on_delete=models.CASCADE, related_name="post_tags")
    position = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["post", "tag"], name="unique_tag_per_post"),
        ]

    def __str__(self):
        return f"{self.post_id}:{self.tag_id}"


class Comment(models.Model):
    # on_delete=models.CASCADE means if the Post is deleted, all its comments are also deleted.
    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="comments")
    author = models.ForeignKey(User, on_delete=models.CASCADE, related_name="comments")
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        # Insertion order is display order
        ordering = ["created_at", "id"]
        verbose_name = "Comment"
        verbose_name_plural = "Comments"

    def __str__(self):
        # Display the first 50 characters of the comment content
        snippet = self.content[:50].replace("\n", " ")
        return f"Comment: '{snippet}...' by {self.author} on Post: '{self.post.title[:30]}...'"
