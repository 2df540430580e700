from rest_framework import permissions, status
from rest_framework.generics import ListCreateAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from account.permissions import IsStoreStaff
from core.exceptions import EntityNotFound
from notifications.realtime import announce
from sales.serializers import SaleSerializer
from .models import Reservation
from .serializers import (
    ReservationCompleteSerializer,
    ReservationCreateSerializer,
    ReservationSerializer,
    ReservationStatusSerializer,
)
from .services import ReservationService


class ReservationPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


def _reservations_for(user):
    qs = Reservation.objects.select_related("user").prefetch_related("details", "updates")
    if user.is_store_staff:
        return qs
    return qs.filter(user=user)


class ReservationListCreateView(ListCreateAPIView):
    """Customers see their own reservations, staff see everyone's."""

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ReservationSerializer
    pagination_class = ReservationPagination

    def get_queryset(self):
        qs = _reservations_for(self.request.user)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = ReservationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        details = serializer.validated_data["details"]
        if not request.user.is_store_staff:
            # customers always reserve at the current catalog price
            details = [{**line, "locked_price": None} for line in details]
        reservation = ReservationService.create_reservation(
            user=request.user,
            details=details,
            reservation_date=serializer.validated_data.get("reservation_date"),
            notes=serializer.validated_data["notes"],
        )
        announce("reservations")
        return Response(
            ReservationSerializer(_reservations_for(request.user).get(pk=reservation.pk)).data,
            status=status.HTTP_201_CREATED,
        )


class ReservationDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        reservation = _reservations_for(request.user).filter(pk=pk).first()
        if not reservation:
            raise EntityNotFound("Reservation not found", reservation_id=pk)
        return Response(ReservationSerializer(reservation).data)


class ReservationStatusView(APIView):
    permission_classes = [IsStoreStaff]

    def patch(self, request, pk):
        serializer = ReservationStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ReservationService.update_status(
            pk,
            serializer.validated_data["status"],
            updated_by=request.user,
            remarks=serializer.validated_data["remarks"],
        )
        announce("reservations", "notifications")
        reservation = _reservations_for(request.user).get(pk=pk)
        return Response(ReservationSerializer(reservation).data)


class ReservationCompleteView(APIView):
    permission_classes = [IsStoreStaff]

    def post(self, request, pk):
        serializer = ReservationCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reservation, sale = ReservationService.complete_reservation(
            pk,
            amount_paid=serializer.validated_data.get("amount_paid"),
            cashier=request.user,
        )
        announce("inventory", "sales", "reservations", "notifications")
        return Response(
            {
                "message": "Reservation completed and sale recorded successfully",
                "reservation": ReservationSerializer(_reservations_for(request.user).get(pk=reservation.pk)).data,
                "sale": SaleSerializer(sale).data,
            },
            status=status.HTTP_200_OK,
        )
