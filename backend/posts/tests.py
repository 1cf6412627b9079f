from django.urls import reverse
from django.contrib.auth import get_user_model
from django.test import TestCase

# We use the APIClient for making requests to DRF views
from rest_framework.test import APIClient
from rest_framework import status

from .models import Comment, Post
from .services import InteractionEngine, PostStore

# Get the custom user model dynamically
User = get_user_model()

# --- URL Name Definitions ---
POST_LIST_CREATE_URL = reverse("post-list-create")


# Helper functions to generate URLs for detail views (e.g., /api/posts/hello-world/)
def post_detail_url(key):
    return reverse("post-detail", kwargs={"key": key})


def post_edit_url(post_id):
    return reverse("post-edit", kwargs={"pk": post_id})


def post_like_url(post_id):
    return reverse("post-like", kwargs={"pk": post_id})


def comment_create_url(post_id):
    return reverse("comment-create", kwargs={"pk": post_id})


# --- Helper Functions for Test Setup ---


def create_user(**params):
    """Create and return a new regular user."""
    return User.objects.create_user(**params)


def create_post(user, **params):
    """Create and return a new post through the post store."""
    defaults = {
        "title": "Default Test Post Title",
        "content": "<p>Default test content.</p>",
        "is_published": True,
    }
    defaults.update(params)
    return PostStore().create_post(user, **defaults)


# ----------------------------------------------------------------------
# A. Public Post API Tests (Read Access)
# ----------------------------------------------------------------------


class PublicPostAPITests(TestCase):
    """Test public access (unauthenticated) to post endpoints."""

    def setUp(self):
        self.client = APIClient()
        self.user = create_user(email="public@test.com", password="password123")
        self.published_post = create_post(self.user, title="Published Post", tags=["News"])
        self.draft_post = create_post(self.user, title="Draft Post", is_published=False)

    # --- LIST VIEW (/api/posts/) ---

    def test_list_returns_published_posts_with_page_metadata(self):
        res = self.client.get(POST_LIST_CREATE_URL)

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["total_count"], 1)
        self.assertEqual(res.data["total_pages"], 1)
        self.assertFalse(res.data["has_next"])
        self.assertEqual(res.data["items"][0]["title"], "Published Post")
        self.assertEqual(res.data["items"][0]["tags"], ["news"])
        self.assertNotIn("content", res.data["items"][0])

    def test_list_filters_from_query_string(self):
        create_post(self.user, title="Another one", tags=["misc"])

        res = self.client.get(POST_LIST_CREATE_URL, {"tag": "news"})
        self.assertEqual([p["title"] for p in res.data["items"]], ["Published Post"])

        res = self.client.get(POST_LIST_CREATE_URL, {"search": "another", "limit": 1})
        self.assertEqual(res.data["total_count"], 1)
        self.assertEqual(res.data["page_size"], 1)

    def test_list_rejects_bad_page(self):
        res = self.client.get(POST_LIST_CREATE_URL, {"page": "zero"})
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("page", res.data)

    # --- DETAIL VIEW (/api/posts/<slug-or-id>/) ---

    def test_retrieve_by_slug_counts_views(self):
        url = post_detail_url(self.published_post.slug)

        self.client.get(url)
        res = self.client.get(url)

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["view_count"], 2)
        self.assertEqual(res.data["comments"], [])
        self.assertFalse(res.data["liked"])

    def test_retrieve_by_id(self):
        res = self.client.get(post_detail_url(self.published_post.id))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["slug"], "published-post")

    def test_retrieve_draft_404(self):
        res = self.client.get(post_detail_url(self.draft_post.slug))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

    def test_retrieve_missing_post_404(self):
        res = self.client.get(post_detail_url("does-not-exist"))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

    # --- WRITE OPERATIONS (UNAUTHENTICATED) ---

    def test_create_requires_authentication(self):
        res = self.client.post(POST_LIST_CREATE_URL, {"title": "Attempt", "content": "x"})
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_like_requires_authentication(self):
        res = self.client.post(post_like_url(self.published_post.id))
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_comment_requires_authentication(self):
        res = self.client.post(comment_create_url(self.published_post.id), {"content": "Hi"})
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)


# ----------------------------------------------------------------------
# B. Author Post API Tests (Write Access)
# ----------------------------------------------------------------------


class AuthorPostAPITests(TestCase):
    """Test create, update and delete for the post's author and for other users."""

    def setUp(self):
        self.client = APIClient()
        self.author = create_user(email="author@test.com", password="authorpassword")
        self.other_user = create_user(email="other@test.com", password="otherpassword")
        self.client.force_authenticate(user=self.author)

        self.post = create_post(self.author, title="Author Managed Post")
        self.payload = {
            "title": "New Post Title",
            "content": (
                "<h2>Section Header</h2>"
                "<p>This is the first paragraph. It contains some <strong>bold text</strong>.</p>"
                "<ul><li>Item one</li><li>Item two</li></ul>"
                '<p><a href="http://safe-link.com">Read More</a></p>'
            ),
            "tags": ["Django", "REST", "django"],
        }

    # --- CREATE (POST) ---

    def test_create_post_success(self):
        res = self.client.post(POST_LIST_CREATE_URL, self.payload)

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["slug"], "new-post-title")
        self.assertEqual(res.data["tags"], ["django", "rest"])
        self.assertEqual(res.data["author"]["id"], self.author.id)
        self.assertEqual(res.data["like_count"], 0)
        self.assertTrue(res.data["is_published"])
        self.assertTrue(res.data["excerpt"].startswith("Section Header"))

    def test_create_same_title_twice_gets_suffix(self):
        self.client.post(POST_LIST_CREATE_URL, self.payload)
        res = self.client.post(POST_LIST_CREATE_URL, self.payload)
        self.assertEqual(res.data["slug"], "new-post-title-1")

    def test_create_post_sanitizes_content_stripping_script_tag(self):
        payload = dict(
            self.payload,
            content="<h1>Safe Title</h1><script>alert('XSS attempt')</script><p>Safe text.</p>",
        )

        res = self.client.post(POST_LIST_CREATE_URL, payload)

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        post = Post.objects.get(pk=res.data["id"])
        self.assertNotIn("<script>", post.content.lower())
        self.assertIn("<h1>Safe Title</h1>", post.content)
        self.assertIn("<p>Safe text.</p>", post.content)

    def test_create_with_only_markup_is_rejected(self):
        payload = dict(self.payload, content="<script></script>")
        res = self.client.post(POST_LIST_CREATE_URL, payload)
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("content", res.data)

    def test_create_with_long_title_is_rejected(self):
        payload = dict(self.payload, title="x" * 201)
        res = self.client.post(POST_LIST_CREATE_URL, payload)
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("title", res.data)

    def test_create_draft(self):
        res = self.client.post(POST_LIST_CREATE_URL, dict(self.payload, is_published=False))
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertFalse(res.data["is_published"])

    # --- UPDATE (PUT/PATCH) ---

    def test_full_update_post_PUT_success(self):
        url = post_detail_url(self.post.id)
        res = self.client.put(url, dict(self.payload, title="Fully Updated Title"))

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.post.refresh_from_db()
        self.assertEqual(self.post.title, "Fully Updated Title")
        self.assertEqual(self.post.slug, "fully-updated-title")

    def test_PUT_without_is_published_keeps_draft_unpublished(self):
        draft = create_post(self.author, title="Quiet Draft", is_published=False)
        url = post_detail_url(draft.id)

        res = self.client.put(url, {"title": "Quiet Draft Revised", "content": "<p>Still private.</p>"})

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertFalse(res.data["is_published"])
        draft.refresh_from_db()
        self.assertFalse(draft.is_published)
        self.assertEqual(draft.title, "Quiet Draft Revised")

    def test_partial_update_PATCH_keeps_other_fields(self):
        url = post_detail_url(self.post.id)
        res = self.client.patch(url, {"tags": ["one"]})

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["tags"], ["one"])
        self.assertEqual(res.data["title"], "Author Managed Post")

    def test_update_post_by_non_author_forbidden(self):
        self.client.force_authenticate(user=self.other_user)
        url = post_detail_url(self.post.id)

        res = self.client.patch(url, {"title": "Unauthorized"})

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.post.refresh_from_db()
        self.assertEqual(self.post.title, "Author Managed Post")

    def test_update_missing_post_404(self):
        res = self.client.patch(post_detail_url(99999), {"title": "Ghost"})
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

    # --- EDIT LOAD (GET /edit/) ---

    def test_edit_load_does_not_count_view(self):
        res = self.client.get(post_edit_url(self.post.id))

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["view_count"], 0)

    def test_edit_load_by_non_author_forbidden(self):
        self.client.force_authenticate(user=self.other_user)
        res = self.client.get(post_edit_url(self.post.id))
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

    # --- DELETE ---

    def test_delete_post_success(self):
        res = self.client.delete(post_detail_url(self.post.id))

        self.assertEqual(res.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Post.objects.filter(pk=self.post.id).exists())

    def test_delete_post_by_non_author_forbidden(self):
        self.client.force_authenticate(user=self.other_user)
        res = self.client.delete(post_detail_url(self.post.id))

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Post.objects.filter(pk=self.post.id).exists())


# ----------------------------------------------------------------------
# C. Interaction API Tests (Likes and Comments)
# ----------------------------------------------------------------------


class InteractionAPITests(TestCase):
    """Test like toggling and comment creation."""

    def setUp(self):
        self.client = APIClient()
        self.author = create_user(email="author@test.com", password="password123")
        self.reader = create_user(email="reader@test.com", password="password123", first_name="R")
        self.post = create_post(self.author, title="Post with Comments")
        self.client.force_authenticate(user=self.reader)

    # --- LIKES (POST /api/posts/<pk>/like/) ---

    def test_toggle_like_twice(self):
        url = post_like_url(self.post.id)

        res = self.client.post(url)
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["like_count"], 1)
        self.assertEqual(res.data["likes"], [self.reader.id])
        self.assertTrue(res.data["liked"])

        res = self.client.post(url)
        self.assertEqual(res.data["like_count"], 0)
        self.assertEqual(res.data["likes"], [])
        self.assertFalse(res.data["liked"])

    def test_author_may_like_own_post(self):
        self.client.force_authenticate(user=self.author)
        res = self.client.post(post_like_url(self.post.id))
        self.assertEqual(res.data["like_count"], 1)

    def test_like_missing_post_404(self):
        res = self.client.post(post_like_url(99999))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

    # --- COMMENTS (POST /api/posts/<pk>/comments/) ---

    def test_create_comment_success(self):
        res = self.client.post(comment_create_url(self.post.id), {"content": "Great read."})

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["comment_count"], 1)
        self.assertEqual(res.data["comments"][0]["content"], "Great read.")
        self.assertEqual(res.data["comments"][0]["author"]["id"], self.reader.id)
        self.assertEqual(Comment.objects.get().author, self.reader)

    def test_empty_comment_rejected(self):
        res = self.client.post(comment_create_url(self.post.id), {"content": ""})

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.post.refresh_from_db()
        self.assertEqual(self.post.comment_count, 0)

    def test_whitespace_comment_rejected(self):
        res = self.client.post(comment_create_url(self.post.id), {"content": "   "})
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_detail_shows_comments_oldest_first(self):
        engine = InteractionEngine()
        engine.add_comment(self.post.id, self.reader, "first")
        engine.add_comment(self.post.id, self.author, "second")

        res = self.client.get(post_detail_url(self.post.slug))

        self.assertEqual([c["content"] for c in res.data["comments"]], ["first", "second"])
        self.assertEqual(res.data["comment_count"], 2)
