from rest_framework import serializers

from sales.serializers import SaleLineSerializer
from .models import Reservation, ReservationDetail, ReservationUpdate


class ReservationDetailSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReservationDetail
        fields = ["id", "variant", "product_name", "size", "unit", "color", "quantity", "price", "subtotal"]
        read_only_fields = fields


class ReservationUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReservationUpdate
        fields = ["id", "update_type", "updated_by_name", "old_value", "new_value", "description", "metadata", "created_at"]
        read_only_fields = fields


class ReservationSerializer(serializers.ModelSerializer):
    details = ReservationDetailSerializer(many=True, read_only=True)
    updates = ReservationUpdateSerializer(many=True, read_only=True)
    user_email = serializers.SerializerMethodField()

    class Meta:
        model = Reservation
        fields = [
            "id",
            "user",
            "user_email",
            "reservation_date",
            "status",
            "total_price",
            "notes",
            "remarks",
            "details",
            "updates",
            "created_at",
        ]
        read_only_fields = fields

    def get_user_email(self, obj):
        return obj.user.email


class ReservationCreateSerializer(serializers.Serializer):
    details = SaleLineSerializer(many=True, allow_empty=False)
    reservation_date = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReservationStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Reservation.Status.choices)
    remarks = serializers.CharField(required=False, allow_blank=True, default="")


class ReservationCompleteSerializer(serializers.Serializer):
    amount_paid = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
