from django.urls import path

from courtbook.realtime.api.views import SocketTokenView

app_name = "realtime"

urlpatterns = [
    path("token", SocketTokenView.as_view(), name="socket-token"),
]
