from django.urls import path
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
)
from .views import (
    registerUser,
    userProfile,
    userStats,
    userDetail,
    userPosts,
)

urlpatterns = [
    path("register/", registerUser, name="register"),
    path("me/", userProfile, name="me"),
    path("me/stats/", userStats, name="me-stats"),
    # The following two lines are for Simple JWT library
    path("login/", TokenObtainPairView.as_view(), name="login"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("<int:pk>/", userDetail, name="user-detail"),
    path("<int:pk>/posts/", userPosts, name="user-posts"),
]
