from django.contrib import admin

from .models import DeviceToken, Notification


@admin.register(DeviceToken)
class DeviceTokenAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "device_type", "is_active", "created_at")
    search_fields = ("token", "user__email")
    list_filter = ("device_type", "is_active")


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "user", "type", "reservation", "is_read", "read_at", "created_at")
    search_fields = ("user__email", "title", "message")
    list_filter = ("type", "is_read")
    raw_id_fields = ("reservation", "reservation_update")
    readonly_fields = ("payload", "created_at")
