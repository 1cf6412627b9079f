from django.urls import include, path

from .views import health

urlpatterns = [
    path("api/health/", health, name="health"),
    path("api/users/", include("users.urls")),
    path("api/posts/", include("posts.urls")),
]
