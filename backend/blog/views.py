import logging

from django.db import DatabaseError, connections
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status

logger = logging.getLogger(__name__)


@api_view(["GET"])
@permission_classes([AllowAny])
def health(request):
    """GET: Liveness plus a database round trip."""
    payload = {"status": "OK", "timestamp": timezone.now().isoformat()}
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
        payload["database"] = True
    except DatabaseError:
        logger.exception("Health check could not reach the database.")
        payload["status"] = "DEGRADED"
        payload["database"] = False
        return Response(payload, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(payload)
