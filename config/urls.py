from django.urls import include
from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework_simplejwt.views import TokenRefreshView

from .health import health as health_view

urlpatterns = [
    path("health/", health_view, name="health"),
    # Short-lived token for the Socket.IO handshake
    path("api/socket/", include("courtbook.realtime.api.urls", namespace="realtime")),
    # JWT endpoints for API clients (the sync client sends the access token)
    path("api/auth/jwt/create/", TokenObtainPairView.as_view(), name="jwt-create"),
    path("api/auth/jwt/refresh/", TokenRefreshView.as_view(), name="jwt-refresh"),
]
