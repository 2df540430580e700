from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import EntityNotFound
from .realtime import announce
from .models import DeviceToken, Notification
from .serializers import DeviceTokenSerializer, NotificationSerializer


def _unread_count(user):
    return Notification.objects.filter(user=user, is_read=False).count()


class NotificationPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 100

    def get_paginated_response(self, data):
        response = super().get_paginated_response(data)
        response.data["unread_count"] = _unread_count(self.request.user)
        return response


class DeviceTokenView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = DeviceTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        device_token = serializer.create_or_update(request.user)
        return Response(
            {
                "id": str(device_token.id),
                "token": device_token.token,
                "device_type": device_token.device_type,
                "is_active": device_token.is_active,
            },
            status=status.HTTP_200_OK,
        )

    def delete(self, request):
        token = (request.data.get("token") or "").strip()
        qs = DeviceToken.objects.filter(user=request.user, is_active=True)
        if token:
            qs = qs.filter(token=token)
        return Response({"deactivated": qs.update(is_active=False)}, status=status.HTTP_200_OK)


class NotificationListView(ListAPIView):
    """The caller's notifications, newest first. ``?read=true|false`` narrows the list."""

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = NotificationSerializer
    pagination_class = NotificationPagination

    def get_queryset(self):
        qs = Notification.objects.filter(user=self.request.user).order_by("-created_at")
        read = self.request.query_params.get("read")
        if read in ("true", "false"):
            qs = qs.filter(is_read=read == "true")
        return qs


class UnreadCountView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response({"unread_count": _unread_count(request.user)})


class NotificationReadView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def patch(self, request, pk):
        notification = Notification.objects.filter(id=pk, user=request.user).first()
        if not notification:
            raise EntityNotFound("Notification not found", notification_id=pk)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = timezone.now()
            notification.save(update_fields=["is_read", "read_at"])
            announce("notifications")
        return Response(
            {"message": "Notification marked as read", "notification": NotificationSerializer(notification).data}
        )


class NotificationMarkAllReadView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        count = Notification.objects.filter(user=request.user, is_read=False).update(
            is_read=True, read_at=timezone.now()
        )
        if count:
            announce("notifications")
        return Response({"message": "All notifications marked as read", "count": count}, status=status.HTTP_200_OK)
