from django.urls import reverse
from django.contrib.auth import get_user_model
from django.test import TestCase

from rest_framework.test import APIClient
from rest_framework import status

from posts.services import InteractionEngine, PostStore

User = get_user_model()

REGISTER_URL = reverse("register")
LOGIN_URL = reverse("login")
ME_URL = reverse("me")
ME_STATS_URL = reverse("me-stats")


def user_detail_url(user_id):
    return reverse("user-detail", kwargs={"pk": user_id})


def user_posts_url(user_id):
    return reverse("user-posts", kwargs={"pk": user_id})


def create_user(**params):
    return User.objects.create_user(**params)


# ----------------------------------------------------------------------
# A. Registration and Login
# ----------------------------------------------------------------------


class RegistrationAPITests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.payload = {
            "email": "new@test.com",
            "password": "strongpass123",
            "first_name": "New",
            "last_name": "Writer",
        }

    def test_register_returns_user_and_tokens(self):
        res = self.client.post(REGISTER_URL, self.payload)

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["email"], "new@test.com")
        self.assertEqual(res.data["full_name"], "New Writer")
        self.assertIn("access", res.data)
        self.assertIn("refresh", res.data)
        self.assertNotIn("password", res.data)

        user = User.objects.get(email="new@test.com")
        self.assertTrue(user.check_password("strongpass123"))

    def test_register_cannot_grant_staff(self):
        res = self.client.post(REGISTER_URL, dict(self.payload, is_staff=True))

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertFalse(User.objects.get(email="new@test.com").is_staff)

    def test_register_duplicate_email_rejected(self):
        create_user(email="new@test.com", password="whatever123")
        res = self.client.post(REGISTER_URL, self.payload)
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("email", res.data)

    def test_register_short_password_rejected(self):
        res = self.client.post(REGISTER_URL, dict(self.payload, password="short"))
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_then_use_token(self):
        create_user(email="login@test.com", password="password123")

        res = self.client.post(LOGIN_URL, {"email": "login@test.com", "password": "password123"})
        self.assertEqual(res.status_code, status.HTTP_200_OK)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {res.data['access']}")
        res = self.client.post(
            reverse("post-list-create"), {"title": "Token Post", "content": "<p>Body</p>"}
        )
        self.assertEqual(res.status_code, status.HTTP_201_CREATED)


# ----------------------------------------------------------------------
# B. Profiles
# ----------------------------------------------------------------------


class ProfileAPITests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = create_user(email="me@test.com", password="password123", first_name="Me")
        self.reader = create_user(email="reader@test.com", password="password123")
        self.store = PostStore()

    def test_me_requires_authentication(self):
        res = self.client.get(ME_URL)
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_update_own_profile_and_password(self):
        self.client.force_authenticate(user=self.user)

        res = self.client.patch(ME_URL, {"bio": "I write things.", "password": "newpassword1"})

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.bio, "I write things.")
        self.assertTrue(self.user.check_password("newpassword1"))

    def test_public_profile_counts_published_posts(self):
        self.store.create_post(self.user, "One", "<p>x</p>")
        self.store.create_post(self.user, "Two", "<p>x</p>", is_published=False)

        res = self.client.get(user_detail_url(self.user.id))

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["post_count"], 1)
        self.assertNotIn("email", res.data)

    def test_unknown_user_404(self):
        res = self.client.get(user_detail_url(99999))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

    def test_user_posts_include_drafts_only_for_owner(self):
        self.store.create_post(self.user, "One", "<p>x</p>")
        self.store.create_post(self.user, "Two", "<p>x</p>", is_published=False)

        res = self.client.get(user_posts_url(self.user.id))
        self.assertEqual(res.data["total_count"], 1)

        self.client.force_authenticate(user=self.user)
        res = self.client.get(user_posts_url(self.user.id))
        self.assertEqual(res.data["total_count"], 2)

    def test_stats_overview(self):
        post = self.store.create_post(self.user, "One", "<p>x</p>")
        InteractionEngine().toggle_like(post.pk, self.reader)
        self.client.force_authenticate(user=self.user)

        res = self.client.get(ME_STATS_URL)

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["total_posts"], 1)
        self.assertEqual(res.data["total_likes"], 1)
        self.assertEqual(res.data["total_views"], 0)
