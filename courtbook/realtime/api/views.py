from __future__ import annotations

import logging

from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from courtbook.realtime.tokens import issue_socket_token

logger = logging.getLogger(__name__)


class SocketTokenView(APIView):
    """Hand the signed-in user a short-lived token for the Socket.IO handshake."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        token = issue_socket_token(request.user)
        logger.debug("Issued socket token for user %s", request.user.pk)
        return Response({"token": token})
