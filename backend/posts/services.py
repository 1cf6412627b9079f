"""
Post store and interaction engine.

Views never touch Post rows directly: every create, read, edit, delete,
like and comment goes through a PostStore or an InteractionEngine. Both are
built with the database alias they write to (see PostsConfig.ready) and
raise the errors from posts.exceptions for the view layer to propagate.

Per-post mutations run inside ``transaction.atomic`` with the post row
locked by ``select_for_update``, so the change to the likes/comments rows
and the recomputed counter commit together and two interactions on the
same post cannot lose each other's update.
"""

import logging
from dataclasses import dataclass

from django.conf import settings
from django.core.paginator import EmptyPage, Paginator
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, F, Q, Sum

from . import permissions
from .exceptions import ConflictError, NotFound, ValidationError
from .models import (
    COMMENT_MAX_LENGTH,
    EXCERPT_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    Comment,
    Post,
    Tag,
    derive_excerpt,
    slug_base,
)

logger = logging.getLogger(__name__)

MAX_SLUG_ATTEMPTS = 1000
SLUG_INSERT_RETRIES = 3
ORDERING_FIELDS = ("created_at", "view_count", "like_count", "title")
EDITABLE_FIELDS = ("title", "content", "tags", "featured_image", "excerpt", "is_published")
REQUIRED_FIELDS = ("title", "content")
TAG_MAX_LENGTH = Tag._meta.get_field("name").max_length


# --- Field cleaning ---


def clean_title(value):
    if not isinstance(value, str):
        raise ValueError("Title must be a string.")
    value = value.strip()
    if not 1 <= len(value) <= TITLE_MAX_LENGTH:
        raise ValueError(f"Title must be between 1 and {TITLE_MAX_LENGTH} characters.")
    return value


def clean_content(value):
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Content must not be empty.")
    return value.strip()


def clean_tags(value):
    """Lower-case, trim and de-duplicate tags, keeping first-seen order."""
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError("Tags must be a list of strings.")
    tags = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError("Tags must be a list of strings.")
        name = item.strip().lower()
        if not name or name in tags:
            continue
        if len(name) > TAG_MAX_LENGTH:
            raise ValueError(f"Tags must be at most {TAG_MAX_LENGTH} characters.")
        tags.append(name)
    return tags


def clean_featured_image(value):
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError("Featured image must be a string.")
    return value.strip()


def clean_excerpt(value):
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError("Excerpt must be a string.")
    value = value.strip()
    if len(value) > EXCERPT_MAX_LENGTH:
        raise ValueError(f"Excerpt must be at most {EXCERPT_MAX_LENGTH} characters.")
    return value


def clean_is_published(value):
    if not isinstance(value, bool):
        raise ValueError("Must be a boolean.")
    return value


def clean_comment(value):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError({"content": ["Comment must not be empty."]})
    value = value.strip()
    if len(value) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            {"content": [f"Comment must be at most {COMMENT_MAX_LENGTH} characters."]}
        )
    return value


_CLEANERS = {
    "title": clean_title,
    "content": clean_content,
    "tags": clean_tags,
    "featured_image": clean_featured_image,
    "excerpt": clean_excerpt,
    "is_published": clean_is_published,
}


def clean_post_fields(data, partial=False):
    """
    Validate a create payload (``partial=False``) or an update patch.

    Collects every field error before raising, so the caller gets the full
    ``{field: [messages]}`` picture in one response.
    """
    unknown = sorted(set(data) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError({name: ["This field cannot be changed."] for name in unknown})

    errors = {}
    cleaned = {}
    for name, cleaner in _CLEANERS.items():
        if name not in data:
            if not partial and name in REQUIRED_FIELDS:
                errors[name] = ["This field is required."]
            continue
        try:
            cleaned[name] = cleaner(data[name])
        except ValueError as exc:
            errors[name] = [str(exc)]
    if errors:
        raise ValidationError(errors)
    return cleaned


# --- Results ---


@dataclass
class PostPage:
    items: list
    total_count: int
    total_pages: int
    page: int
    page_size: int

    @property
    def has_next(self):
        return self.page < self.total_pages

    @property
    def has_previous(self):
        return self.page > 1


# --- Stores ---


class PostRepository:
    """Lookups shared by the post store and the interaction engine."""

    def __init__(self, using="default"):
        self.using = using

    def _posts(self):
        return (
            Post.objects.using(self.using)
            .select_related("author")
            .prefetch_related("post_tags__tag")
        )

    def _find(self, queryset, key):
        key = str(key).strip()
        post = None
        if key.isascii() and key.isdigit():
            post = queryset.filter(pk=int(key)).first()
        if post is None and key:
            post = queryset.filter(slug=key).first()
        if post is None:
            raise NotFound("Post not found.")
        return post

    def lookup(self, key, actor=None):
        """
        Fetch a post by numeric id or slug with its comments and likers.

        Drafts are only visible to their author.
        """
        queryset = self._posts().prefetch_related("comments__author", "likes")
        post = self._find(queryset, key)
        if not post.is_published and not permissions.can_mutate(post, actor):
            raise NotFound("Post not found.")
        return post

    def _lock(self, key, actor=None):
        # Must be called inside transaction.atomic(using=self.using).
        queryset = Post.objects.using(self.using).select_for_update()
        post = self._find(queryset, key)
        if not post.is_published and not permissions.can_mutate(post, actor):
            raise NotFound("Post not found.")
        return post


class PostStore(PostRepository):
    """Creation, retrieval, editing, deletion and listing of posts."""

    def __init__(self, using="default", page_size=None, max_page_size=None):
        super().__init__(using=using)
        self.page_size = page_size or getattr(settings, "BLOG_PAGE_SIZE", 10)
        self.max_page_size = max_page_size or getattr(settings, "BLOG_MAX_PAGE_SIZE", 50)

    # --- Slugs ---

    def unique_slug(self, title, exclude_pk=None):
        """
        ``slugify(title)``, or the first of ``-1``, ``-2``... appended to it
        that no other post uses.
        """
        base = slug_base(title)
        taken = Post.objects.using(self.using).filter(slug__startswith=base)
        if exclude_pk is not None:
            taken = taken.exclude(pk=exclude_pk)
        taken = set(taken.values_list("slug", flat=True))
        if base not in taken:
            return base
        for suffix in range(1, MAX_SLUG_ATTEMPTS + 1):
            candidate = f"{base}-{suffix}"
            if candidate not in taken:
                return candidate
        raise ConflictError()

    def slug_taken(self, slug, exclude_pk=None):
        taken = Post.objects.using(self.using).filter(slug=slug)
        if exclude_pk is not None:
            taken = taken.exclude(pk=exclude_pk)
        return taken.exists()

    # --- Create ---

    def create_post(self, author, title, content, tags=None, featured_image="", excerpt="", is_published=True):
        permissions.ensure_authenticated(author)
        fields = clean_post_fields(
            {
                "title": title,
                "content": content,
                "tags": tags,
                "featured_image": featured_image,
                "excerpt": excerpt,
                "is_published": is_published,
            }
        )
        tag_names = fields.pop("tags")
        if not fields["excerpt"]:
            fields["excerpt"] = derive_excerpt(fields["content"])

        for attempt in range(SLUG_INSERT_RETRIES):
            post = Post(author=author, slug=self.unique_slug(fields["title"]), **fields)
            try:
                with transaction.atomic(using=self.using):
                    post.save(using=self.using)
                    post.set_tags(tag_names)
            except IntegrityError:
                # Another request took the same slug between the check and the insert.
                if not self.slug_taken(post.slug):
                    raise
                logger.warning(
                    "Slug %s taken concurrently, retrying (attempt %d).", post.slug, attempt + 1
                )
                continue
            break
        else:
            raise ConflictError()

        logger.info(
            "Post created.",
            extra={"post_id": post.pk, "actor_id": author.pk, "slug": post.slug},
        )
        return self.lookup(post.pk, actor=author)

    # --- Read ---

    def get_post(self, key, actor=None, count_view=True):
        """
        Fetch a post for display. The view counter is bumped once per call;
        a failure to record the view is logged and does not fail the read.
        """
        post = self.lookup(key, actor=actor)
        if count_view:
            self._count_view(post)
        return post

    def _count_view(self, post):
        try:
            with transaction.atomic(using=self.using):
                Post.objects.using(self.using).filter(pk=post.pk).update(
                    view_count=F("view_count") + 1
                )
                post.refresh_from_db(using=self.using, fields=["view_count"])
        except DatabaseError:
            logger.warning(
                "Could not record view.", exc_info=True, extra={"post_id": post.pk}
            )

    def get_post_for_edit(self, key, actor):
        permissions.ensure_authenticated(actor)
        post = self.lookup(key, actor=actor)
        permissions.ensure_can_mutate(post, actor)
        return post

    # --- Update / delete ---

    def update_post(self, key, actor, patch):
        permissions.ensure_authenticated(actor)
        with transaction.atomic(using=self.using):
            post = self._lock(key, actor=actor)
            permissions.ensure_can_mutate(post, actor)
            cleaned = clean_post_fields(patch, partial=True)
            tag_names = cleaned.pop("tags", None)

            if "title" in cleaned and cleaned["title"] != post.title:
                slug = self.unique_slug(cleaned["title"], exclude_pk=post.pk)
                if slug != post.slug:
                    cleaned["slug"] = slug

            if "content" in cleaned and "excerpt" not in cleaned:
                # Keep a derived excerpt in step with the body; leave a hand-written one alone.
                if post.excerpt == derive_excerpt(post.content):
                    cleaned["excerpt"] = derive_excerpt(cleaned["content"])
            elif cleaned.get("excerpt") == "":
                cleaned["excerpt"] = derive_excerpt(cleaned.get("content", post.content))

            for name, value in cleaned.items():
                setattr(post, name, value)
            self._save_update(post, cleaned)
            if tag_names is not None:
                post.set_tags(tag_names)

        logger.info(
            "Post updated.",
            extra={"post_id": post.pk, "actor_id": actor.pk, "fields": sorted(cleaned)},
        )
        return self.lookup(post.pk, actor=actor)

    def _save_update(self, post, cleaned):
        # Runs inside update_post's transaction; each save gets its own savepoint
        # so a slug lost to a concurrent insert can be picked again.
        for attempt in range(SLUG_INSERT_RETRIES):
            try:
                with transaction.atomic(using=self.using):
                    post.save(using=self.using, update_fields=[*cleaned, "updated_at"])
            except IntegrityError:
                if "slug" not in cleaned or not self.slug_taken(post.slug, exclude_pk=post.pk):
                    raise
                logger.warning(
                    "Slug %s taken concurrently, retrying (attempt %d).", post.slug, attempt + 1
                )
                post.slug = cleaned["slug"] = self.unique_slug(post.title, exclude_pk=post.pk)
                continue
            return
        raise ConflictError()

    def delete_post(self, key, actor):
        permissions.ensure_authenticated(actor)
        with transaction.atomic(using=self.using):
            post = self._lock(key, actor=actor)
            permissions.ensure_can_mutate(post, actor)
            post_id = post.pk
            post.delete()
        logger.info("Post deleted.", extra={"post_id": post_id, "actor_id": actor.pk})

    # --- Listing ---

    def _page_number(self, page):
        try:
            page = int(page)
        except (TypeError, ValueError):
            raise ValidationError({"page": ["A valid integer is required."]})
        if page < 1:
            raise ValidationError({"page": ["Page numbers start at 1."]})
        return page

    def _page_size(self, page_size):
        if page_size in (None, ""):
            return self.page_size
        try:
            page_size = int(page_size)
        except (TypeError, ValueError):
            raise ValidationError({"page_size": ["A valid integer is required."]})
        if page_size < 1:
            raise ValidationError({"page_size": ["Page size must be at least 1."]})
        return min(page_size, self.max_page_size)

    def _ordering(self, ordering):
        if not ordering:
            return "-created_at"
        if ordering.lstrip("-") not in ORDERING_FIELDS:
            raise ValidationError(
                {"ordering": [f"Choose one of: {', '.join(ORDERING_FIELDS)}."]}
            )
        return ordering

    def list_posts(self, actor=None, search=None, author_id=None, tag=None, page=1, page_size=None, ordering=None):
        """
        One page of posts, newest first unless ``ordering`` says otherwise.

        Drafts are included only when an author lists their own posts.
        """
        page = self._page_number(page)
        page_size = self._page_size(page_size)
        ordering = self._ordering(ordering)

        queryset = self._posts()
        own_posts = False
        if author_id not in (None, ""):
            try:
                author_id = int(author_id)
            except (TypeError, ValueError):
                raise ValidationError({"author": ["A valid integer is required."]})
            queryset = queryset.filter(author_id=author_id)
            own_posts = permissions.is_authenticated(actor) and actor.pk == author_id
        if not own_posts:
            queryset = queryset.filter(is_published=True)
        if search:
            search = search.strip()
            queryset = queryset.filter(Q(title__icontains=search) | Q(content__icontains=search))
        if tag:
            queryset = queryset.filter(post_tags__tag__name=tag.strip().lower())
        queryset = queryset.order_by(ordering, "-id")

        paginator = Paginator(queryset, page_size)
        total_count = paginator.count
        try:
            items = list(paginator.page(page).object_list)
        except EmptyPage:
            items = []

        return PostPage(
            items=items,
            total_count=total_count,
            total_pages=paginator.num_pages if total_count else 0,
            page=page,
            page_size=page_size,
        )

    def author_stats(self, author):
        permissions.ensure_authenticated(author)
        totals = Post.objects.using(self.using).filter(author_id=author.pk).aggregate(
            total_posts=Count("id"),
            published_posts=Count("id", filter=Q(is_published=True)),
            total_views=Sum("view_count"),
            total_likes=Sum("like_count"),
            total_comments=Sum("comment_count"),
        )
        return {name: value or 0 for name, value in totals.items()}


class InteractionEngine(PostRepository):
    """Likes and comments. Each call is one locked read-modify-write of a post."""

    def toggle_like(self, key, actor):
        """
        Flip the actor's like on a post.

        This is a toggle, not "ensure liked": a retried request un-likes.
        """
        permissions.ensure_authenticated(actor)
        with transaction.atomic(using=self.using):
            post = self._lock(key, actor=actor)
            if post.likes.filter(pk=actor.pk).exists():
                post.likes.remove(actor)
                liked = False
            else:
                post.likes.add(actor)
                liked = True
            post.like_count = post.likes.count()
            post.save(using=self.using, update_fields=["like_count"])

        logger.info(
            "Post liked." if liked else "Post unliked.",
            extra={"post_id": post.pk, "actor_id": actor.pk, "like_count": post.like_count},
        )
        return self.lookup(post.pk, actor=actor)

    def add_comment(self, key, actor, content):
        permissions.ensure_authenticated(actor)
        content = clean_comment(content)
        with transaction.atomic(using=self.using):
            post = self._lock(key, actor=actor)
            Comment.objects.using(self.using).create(post=post, author=actor, content=content)
            post.comment_count = post.comments.count()
            post.save(using=self.using, update_fields=["comment_count"])

        logger.info(
            "Comment added.",
            extra={"post_id": post.pk, "actor_id": actor.pk, "comment_count": post.comment_count},
        )
        return self.lookup(post.pk, actor=actor)

    @staticmethod
    def has_liked(post, actor):
        if not permissions.is_authenticated(actor):
            return False
        return any(user.pk == actor.pk for user in post.likes.all())
