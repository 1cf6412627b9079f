from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.db import DatabaseError
from django.test import TestCase

from .exceptions import (
    AuthenticationRequired,
    AuthorizationError,
    ConflictError,
    NotFound,
    ValidationError,
)
from .models import Comment, Post
from .permissions import can_mutate, is_authenticated
from .services import SLUG_INSERT_RETRIES, InteractionEngine, PostStore, clean_tags

User = get_user_model()


# --- Helper Functions for Test Setup ---


def create_user(email, **params):
    return User.objects.create_user(email=email, password="password123", **params)


def assert_counters_consistent(testcase, post_id):
    post = Post.objects.get(pk=post_id)
    testcase.assertEqual(post.like_count, post.likes.count())
    testcase.assertEqual(post.comment_count, post.comments.count())


class StoreTestCase(TestCase):
    def setUp(self):
        self.store = PostStore()
        self.engine = InteractionEngine()
        self.author = create_user("author@test.com", first_name="Ada")
        self.reader = create_user("reader@test.com")

    def create_post(self, title="Hello World", author=None, **params):
        defaults = {"content": "<p>Some body text.</p>"}
        defaults.update(params)
        return self.store.create_post(author or self.author, title, **defaults)


# ----------------------------------------------------------------------
# A. Authorization Gate
# ----------------------------------------------------------------------


class AuthorizationGateTests(StoreTestCase):
    def test_only_the_author_can_mutate(self):
        post = self.create_post()
        self.assertTrue(can_mutate(post, self.author))
        self.assertFalse(can_mutate(post, self.reader))
        self.assertFalse(can_mutate(post, None))
        self.assertFalse(can_mutate(post, AnonymousUser()))

    def test_any_signed_in_user_is_authenticated(self):
        self.assertTrue(is_authenticated(self.reader))
        self.assertFalse(is_authenticated(None))
        self.assertFalse(is_authenticated(AnonymousUser()))


# ----------------------------------------------------------------------
# B. Post Store
# ----------------------------------------------------------------------


class CreatePostTests(StoreTestCase):
    def test_duplicate_titles_get_numbered_slugs(self):
        first = self.create_post("Hello World")
        second = self.create_post("Hello World")

        self.assertEqual(first.slug, "hello-world")
        self.assertEqual(second.slug, "hello-world-1")

    def test_colliding_titles_produce_distinct_slugs(self):
        slugs = [self.create_post("Same Title").slug for _ in range(6)]
        self.assertEqual(len(set(slugs)), len(slugs))

    def test_title_that_looks_like_a_suffixed_slug(self):
        self.create_post("Hello World")
        self.create_post("Hello World 1")
        third = self.create_post("Hello World")
        self.assertEqual(third.slug, "hello-world-2")

    def test_punctuation_title_falls_back_to_post(self):
        post = self.create_post("!!!")
        self.assertEqual(post.slug, "post")

    def test_counters_start_at_zero(self):
        post = self.create_post()
        self.assertEqual((post.view_count, post.like_count, post.comment_count), (0, 0, 0))
        self.assertEqual(post.author, self.author)

    def test_tags_are_lowercased_and_deduplicated_in_order(self):
        post = self.create_post(tags=["Python", " django ", "python", ""])
        self.assertEqual(post.tag_names, ["python", "django"])

    def test_excerpt_is_derived_from_body_text(self):
        post = self.create_post(content="<h2>Intro</h2><p>First   paragraph.</p>")
        self.assertEqual(post.excerpt, "IntroFirst paragraph.")

    def test_read_time_is_at_least_one_minute(self):
        post = self.create_post(content="<p>" + "word " * 450 + "</p>")
        self.assertEqual(post.read_time, 3)
        self.assertEqual(self.create_post(content="short").read_time, 1)

    def test_invalid_fields_are_rejected(self):
        with self.assertRaises(ValidationError):
            self.create_post(title="")
        with self.assertRaises(ValidationError):
            self.create_post(title="x" * 201)
        with self.assertRaises(ValidationError):
            self.create_post(content="   ")
        self.assertEqual(Post.objects.count(), 0)

    def test_anonymous_author_is_rejected(self):
        with self.assertRaises(AuthenticationRequired):
            self.store.create_post(None, "Title", "Body")

    def test_tags_must_be_a_list(self):
        self.assertEqual(clean_tags(None), [])
        with self.assertRaises(ValueError):
            clean_tags("python")


class GetPostTests(StoreTestCase):
    def test_reading_twice_counts_two_views(self):
        post = self.create_post()

        self.store.get_post(post.slug)
        fetched = self.store.get_post(post.slug)

        self.assertEqual(fetched.view_count, 2)
        self.assertEqual(Post.objects.get(pk=post.pk).view_count, 2)

    def test_lookup_by_id_or_slug(self):
        post = self.create_post()
        self.assertEqual(self.store.get_post(post.pk).pk, post.pk)
        self.assertEqual(self.store.get_post(str(post.pk)).pk, post.pk)
        self.assertEqual(self.store.get_post(post.slug).pk, post.pk)

    def test_missing_post_raises_not_found(self):
        with self.assertRaises(NotFound):
            self.store.get_post("no-such-post")

    def test_failed_view_increment_does_not_fail_the_read(self):
        post = self.create_post()

        with mock.patch(
            "django.db.models.query.QuerySet.update", side_effect=DatabaseError("down")
        ):
            with self.assertLogs("posts.services", level="WARNING"):
                fetched = self.store.get_post(post.slug)

        self.assertEqual(fetched.pk, post.pk)
        self.assertEqual(Post.objects.get(pk=post.pk).view_count, 0)

    def test_edit_load_does_not_count_a_view(self):
        post = self.create_post()
        self.store.get_post_for_edit(post.pk, self.author)
        self.assertEqual(Post.objects.get(pk=post.pk).view_count, 0)

    def test_edit_load_is_author_only(self):
        post = self.create_post()
        with self.assertRaises(AuthorizationError):
            self.store.get_post_for_edit(post.pk, self.reader)

    def test_drafts_are_hidden_from_other_users(self):
        draft = self.create_post(is_published=False)

        with self.assertRaises(NotFound):
            self.store.get_post(draft.slug, actor=self.reader)
        with self.assertRaises(NotFound):
            self.store.get_post(draft.slug)
        self.assertEqual(self.store.get_post(draft.slug, actor=self.author).pk, draft.pk)


class UpdatePostTests(StoreTestCase):
    def test_non_author_update_is_rejected_and_post_unchanged(self):
        post = self.create_post("Original", tags=["keep"])
        before = Post.objects.get(pk=post.pk)

        with self.assertRaises(AuthorizationError):
            self.store.update_post(post.pk, self.reader, {"title": "Hijacked", "tags": []})

        after = Post.objects.get(pk=post.pk)
        self.assertEqual(after.title, "Original")
        self.assertEqual(after.slug, before.slug)
        self.assertEqual(after.updated_at, before.updated_at)
        self.assertEqual(after.tag_names, ["keep"])

    def test_anonymous_update_is_rejected(self):
        post = self.create_post()
        with self.assertRaises(AuthorizationError):
            self.store.update_post(post.pk, None, {"title": "Nope"})

    def test_cosmetic_title_change_keeps_slug(self):
        post = self.create_post("Hello World")
        updated = self.store.update_post(post.pk, self.author, {"title": "Hello, World!"})
        self.assertEqual(updated.title, "Hello, World!")
        self.assertEqual(updated.slug, "hello-world")

    def test_new_title_regenerates_slug_with_collision_suffix(self):
        self.create_post("Taken Title")
        post = self.create_post("Something Else")

        updated = self.store.update_post(post.pk, self.author, {"title": "Taken Title"})

        self.assertEqual(updated.slug, "taken-title-1")

    def test_suffixed_slug_survives_cosmetic_change(self):
        self.create_post("Hello World")
        second = self.create_post("Hello World")
        updated = self.store.update_post(second.pk, self.author, {"title": "Hello world"})
        self.assertEqual(updated.slug, "hello-world-1")

    def test_dropping_a_number_from_the_title_drops_it_from_the_slug(self):
        post = self.create_post("Release 2024")
        self.assertEqual(post.slug, "release-2024")

        updated = self.store.update_post(post.pk, self.author, {"title": "Release"})

        self.assertEqual(updated.slug, "release")

    def test_update_replaces_tags_and_rederives_excerpt(self):
        post = self.create_post(content="<p>Old body.</p>", tags=["a", "b"])

        updated = self.store.update_post(
            post.pk, self.author, {"content": "<p>New body.</p>", "tags": ["C", "a"]}
        )

        self.assertEqual(updated.tag_names, ["c", "a"])
        self.assertEqual(updated.excerpt, "New body.")

    def test_hand_written_excerpt_is_kept(self):
        post = self.create_post(excerpt="My summary")
        updated = self.store.update_post(post.pk, self.author, {"content": "<p>Other.</p>"})
        self.assertEqual(updated.excerpt, "My summary")

    def test_protected_fields_cannot_be_patched(self):
        post = self.create_post()
        with self.assertRaises(ValidationError):
            self.store.update_post(post.pk, self.author, {"like_count": 99})
        with self.assertRaises(ValidationError):
            self.store.update_post(post.pk, self.author, {"author": self.reader.pk})

    def test_update_does_not_touch_counters(self):
        post = self.create_post()
        self.engine.toggle_like(post.pk, self.reader)
        self.engine.add_comment(post.pk, self.reader, "Nice")

        updated = self.store.update_post(post.pk, self.author, {"title": "Renamed"})

        self.assertEqual((updated.like_count, updated.comment_count), (1, 1))


class SlugConflictTests(StoreTestCase):
    def test_running_out_of_suffixes_is_a_conflict(self):
        with mock.patch("posts.services.MAX_SLUG_ATTEMPTS", 2):
            slugs = [self.create_post("Same").slug for _ in range(3)]
            with self.assertRaises(ConflictError):
                self.create_post("Same")

        self.assertEqual(slugs, ["same", "same-1", "same-2"])
        self.assertEqual(Post.objects.count(), 3)

    def test_retitle_running_out_of_suffixes_is_a_conflict(self):
        self.create_post("Same")
        self.create_post("Same")
        post = self.create_post("Other")

        with mock.patch("posts.services.MAX_SLUG_ATTEMPTS", 1):
            with self.assertRaises(ConflictError):
                self.store.update_post(post.pk, self.author, {"title": "Same"})

        self.assertEqual(Post.objects.get(pk=post.pk).slug, "other")

    def test_create_retries_when_slug_is_taken_concurrently(self):
        self.create_post("Taken")

        with mock.patch.object(PostStore, "unique_slug", side_effect=["taken", "fresh"]):
            with self.assertLogs("posts.services", level="WARNING"):
                post = self.create_post("Taken")

        self.assertEqual(post.slug, "fresh")

    def test_create_gives_up_after_repeated_slug_races(self):
        self.create_post("Taken")

        with mock.patch.object(PostStore, "unique_slug", return_value="taken") as unique_slug:
            with self.assertLogs("posts.services", level="WARNING") as logs:
                with self.assertRaises(ConflictError):
                    self.create_post("Taken")

        self.assertEqual(unique_slug.call_count, SLUG_INSERT_RETRIES)
        self.assertEqual(len(logs.records), SLUG_INSERT_RETRIES)
        self.assertEqual(Post.objects.count(), 1)

    def test_update_retries_when_slug_is_taken_concurrently(self):
        self.create_post("Taken")
        post = self.create_post("Draft Title")

        with mock.patch.object(PostStore, "unique_slug", side_effect=["taken", "retitled"]):
            with self.assertLogs("posts.services", level="WARNING"):
                updated = self.store.update_post(post.pk, self.author, {"title": "Retitled"})

        self.assertEqual(updated.slug, "retitled")
        self.assertEqual(updated.title, "Retitled")

    def test_update_gives_up_after_repeated_slug_races(self):
        self.create_post("Taken")
        post = self.create_post("Draft Title")

        with mock.patch.object(PostStore, "unique_slug", return_value="taken"):
            with self.assertLogs("posts.services", level="WARNING"):
                with self.assertRaises(ConflictError):
                    self.store.update_post(post.pk, self.author, {"title": "Retitled"})

        post.refresh_from_db()
        self.assertEqual((post.title, post.slug), ("Draft Title", "draft-title"))


class DeletePostTests(StoreTestCase):
    def test_author_deletes_post_and_its_comments(self):
        post = self.create_post()
        self.engine.add_comment(post.pk, self.reader, "Hello")

        self.store.delete_post(post.pk, self.author)

        self.assertFalse(Post.objects.filter(pk=post.pk).exists())
        self.assertEqual(Comment.objects.count(), 0)

    def test_non_author_delete_is_rejected(self):
        post = self.create_post()
        with self.assertRaises(AuthorizationError):
            self.store.delete_post(post.pk, self.reader)
        self.assertTrue(Post.objects.filter(pk=post.pk).exists())

    def test_delete_missing_post(self):
        with self.assertRaises(NotFound):
            self.store.delete_post(12345, self.author)


class ListPostsTests(StoreTestCase):
    def test_pages_cover_every_post_exactly_once(self):
        for i in range(23):
            self.create_post(f"Post {i}")

        first = self.store.list_posts(page=1, page_size=10)
        self.assertEqual(first.total_count, 23)
        self.assertEqual(first.total_pages, 3)

        seen = []
        for number in range(1, first.total_pages + 1):
            seen.extend(post.pk for post in self.store.list_posts(page=number, page_size=10).items)

        self.assertEqual(len(seen), 23)
        self.assertEqual(len(set(seen)), 23)

        past_end = self.store.list_posts(page=4, page_size=10)
        self.assertEqual(past_end.items, [])
        self.assertFalse(past_end.has_next)

    def test_newest_first_by_default(self):
        older = self.create_post("Older")
        newer = self.create_post("Newer")
        items = self.store.list_posts().items
        self.assertEqual([p.pk for p in items], [newer.pk, older.pk])

    def test_empty_listing(self):
        page = self.store.list_posts()
        self.assertEqual((page.items, page.total_count, page.total_pages), ([], 0, 0))

    def test_search_tag_and_author_filters(self):
        other = create_user("other@test.com")
        self.create_post("Django tips", tags=["python"])
        self.create_post("Cooking", content="<p>Pasta with django sauce</p>", tags=["food"])
        self.create_post("Gardening", author=other, tags=["python"])

        self.assertEqual(self.store.list_posts(search="DJANGO").total_count, 2)
        self.assertEqual(self.store.list_posts(tag="Python").total_count, 2)
        self.assertEqual(self.store.list_posts(author_id=other.pk).total_count, 1)
        self.assertEqual(
            self.store.list_posts(author_id=self.author.pk, tag="python").total_count, 1
        )

    def test_drafts_listed_only_for_their_author(self):
        self.create_post("Public")
        self.create_post("Draft", is_published=False)

        self.assertEqual(self.store.list_posts().total_count, 1)
        self.assertEqual(
            self.store.list_posts(actor=self.reader, author_id=self.author.pk).total_count, 1
        )
        self.assertEqual(
            self.store.list_posts(actor=self.author, author_id=self.author.pk).total_count, 2
        )

    def test_ordering_override(self):
        quiet = self.create_post("Quiet")
        popular = self.create_post("Popular")
        self.engine.toggle_like(quiet.pk, self.reader)

        items = self.store.list_posts(ordering="-like_count").items
        self.assertEqual([p.pk for p in items], [quiet.pk, popular.pk])

    def test_invalid_paging_and_ordering(self):
        with self.assertRaises(ValidationError):
            self.store.list_posts(page=0)
        with self.assertRaises(ValidationError):
            self.store.list_posts(page="two")
        with self.assertRaises(ValidationError):
            self.store.list_posts(ordering="password")

    def test_page_size_is_capped(self):
        self.assertEqual(self.store.list_posts(page_size=500).page_size, self.store.max_page_size)

    def test_author_stats(self):
        post = self.create_post()
        self.create_post("Draft", is_published=False)
        self.store.get_post(post.pk)
        self.engine.toggle_like(post.pk, self.reader)
        self.engine.add_comment(post.pk, self.reader, "Hi")

        stats = self.store.author_stats(self.author)

        self.assertEqual(
            stats,
            {
                "total_posts": 2,
                "published_posts": 1,
                "total_views": 1,
                "total_likes": 1,
                "total_comments": 1,
            },
        )


# ----------------------------------------------------------------------
# C. Interaction Engine
# ----------------------------------------------------------------------


class ToggleLikeTests(StoreTestCase):
    def test_like_then_unlike(self):
        post = self.create_post()

        liked = self.engine.toggle_like(post.pk, self.reader)
        self.assertEqual(liked.like_count, 1)
        self.assertTrue(InteractionEngine.has_liked(liked, self.reader))

        unliked = self.engine.toggle_like(post.pk, self.reader)
        self.assertEqual(unliked.like_count, 0)
        self.assertFalse(InteractionEngine.has_liked(unliked, self.reader))

    def test_toggle_pair_restores_previous_state(self):
        post = self.create_post()
        self.engine.toggle_like(post.pk, self.author)

        self.engine.toggle_like(post.pk, self.reader)
        restored = self.engine.toggle_like(post.pk, self.reader)

        self.assertEqual(restored.like_count, 1)
        self.assertEqual([u.pk for u in restored.likes.all()], [self.author.pk])

    def test_anonymous_like_is_rejected(self):
        post = self.create_post()
        with self.assertRaises(AuthorizationError):
            self.engine.toggle_like(post.pk, None)
        self.assertEqual(Post.objects.get(pk=post.pk).like_count, 0)

    def test_like_missing_post(self):
        with self.assertRaises(NotFound):
            self.engine.toggle_like(999, self.reader)

    def test_like_does_not_touch_updated_at(self):
        post = self.create_post()
        before = Post.objects.get(pk=post.pk).updated_at
        self.engine.toggle_like(post.pk, self.reader)
        self.assertEqual(Post.objects.get(pk=post.pk).updated_at, before)


class AddCommentTests(StoreTestCase):
    def test_comments_append_in_order(self):
        post = self.create_post()

        self.engine.add_comment(post.pk, self.reader, "First")
        updated = self.engine.add_comment(post.pk, self.author, "  Second  ")

        self.assertEqual(updated.comment_count, 2)
        self.assertEqual([c.content for c in updated.comments.all()], ["First", "Second"])
        self.assertEqual(updated.comments.all()[0].author, self.reader)

    def test_empty_comment_is_rejected(self):
        post = self.create_post()

        with self.assertRaises(ValidationError):
            self.engine.add_comment(post.pk, self.reader, "")
        with self.assertRaises(ValidationError):
            self.engine.add_comment(post.pk, self.reader, "   ")

        self.assertEqual(Post.objects.get(pk=post.pk).comment_count, 0)

    def test_anonymous_comment_is_rejected(self):
        post = self.create_post()
        with self.assertRaises(AuthorizationError):
            self.engine.add_comment(post.pk, None, "Hello")

    def test_comment_on_someone_elses_draft_is_not_found(self):
        draft = self.create_post(is_published=False)
        with self.assertRaises(NotFound):
            self.engine.add_comment(draft.pk, self.reader, "Hello")


class CounterConsistencyTests(StoreTestCase):
    def test_counters_match_collections_after_mixed_interactions(self):
        post = self.create_post()
        users = [create_user(f"user{i}@test.com") for i in range(4)]

        for i, user in enumerate(users):
            self.engine.toggle_like(post.pk, user)
            self.engine.add_comment(post.pk, user, f"Comment {i}")
            assert_counters_consistent(self, post.pk)
        for user in users[::2]:
            self.engine.toggle_like(post.pk, user)
            assert_counters_consistent(self, post.pk)

        post = Post.objects.get(pk=post.pk)
        self.assertEqual((post.like_count, post.comment_count), (2, 4))
