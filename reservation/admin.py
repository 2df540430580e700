from django.contrib import admin

from .models import Reservation, ReservationDetail, ReservationUpdate


class ReservationDetailInline(admin.TabularInline):
    model = ReservationDetail
    extra = 0


class ReservationUpdateInline(admin.TabularInline):
    model = ReservationUpdate
    extra = 0
    can_delete = False
    readonly_fields = ("update_type", "updated_by_name", "old_value", "new_value", "description", "created_at")
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "status", "total_price", "reservation_date")
    list_filter = ("status",)
    search_fields = ("user__email", "notes", "remarks")
    inlines = [ReservationDetailInline, ReservationUpdateInline]
