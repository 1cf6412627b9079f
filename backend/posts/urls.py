from django.urls import path
from .views import post_list_create, post_detail, post_edit, post_like, comment_create

urlpatterns = [
    # Endpoint: /api/posts/
    # Methods: GET (List published posts), POST (Create post - authenticated)
    path("", post_list_create, name="post-list-create"),
    # Endpoint: /api/posts/<int:pk>/edit/
    # Methods: GET (Load for editing - author only, no view counted)
    path("<int:pk>/edit/", post_edit, name="post-edit"),
    # Endpoint: /api/posts/<int:pk>/like/
    # Methods: POST (Toggle like - authenticated)
    path("<int:pk>/like/", post_like, name="post-like"),
    # Endpoint: /api/posts/<int:pk>/comments/
    # Methods: POST (Add comment - authenticated)
    path("<int:pk>/comments/", comment_create, name="comment-create"),
    # Endpoint: /api/posts/<slug-or-id>/
    # Methods: GET (Retrieve), PUT/PATCH (Update - author only), DELETE (Delete - author only)
    path("<str:key>/", post_detail, name="post-detail"),
]
