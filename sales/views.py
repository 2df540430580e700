from datetime import datetime, time

from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.generics import ListCreateAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from account.permissions import IsStoreStaff
from core.exceptions import EntityNotFound, ValidationFailed
from notifications.realtime import announce
from .models import Sale
from .reports import margin_summary
from .serializers import SaleCreateSerializer, SaleSerializer
from .services import SaleReturnService, SaleService


class SalePagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


def _day_bound(value, name, end=False):
    if not value:
        return None
    try:
        day = parse_date(value)
    except ValueError:
        day = None
    if day is None:
        raise ValidationFailed(f"{name} must be a date (YYYY-MM-DD)", **{name: value})
    return timezone.make_aware(datetime.combine(day, time.max if end else time.min))


class SaleListCreateView(ListCreateAPIView):
    permission_classes = [IsStoreStaff]
    serializer_class = SaleSerializer
    pagination_class = SalePagination

    def get_queryset(self):
        qs = Sale.objects.select_related("cashier").prefetch_related("items")
        params = self.request.query_params
        if params.get("type"):
            qs = qs.filter(type=params["type"])
        start = _day_bound(params.get("start"), "start")
        end = _day_bound(params.get("end"), "end", end=True)
        if start:
            qs = qs.filter(sale_date__gte=start)
        if end:
            qs = qs.filter(sale_date__lte=end)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = SaleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sale = SaleService.create_sale(
            items=serializer.validated_data["items"],
            amount_paid=serializer.validated_data["amount_paid"],
            cashier=request.user,
        )
        announce("inventory", "sales")
        return Response(
            {"message": "Sale created successfully.", "sale": SaleSerializer(sale).data},
            status=status.HTTP_201_CREATED,
        )


class SaleDetailView(APIView):
    permission_classes = [IsStoreStaff]

    def get(self, request, pk):
        sale = Sale.objects.select_related("cashier").prefetch_related("items").filter(pk=pk).first()
        if not sale:
            raise EntityNotFound("Sale not found", sale_id=pk)
        return Response(SaleSerializer(sale).data)


class SaleReturnView(APIView):
    permission_classes = [IsStoreStaff]

    def post(self, request, pk):
        result = SaleReturnService.return_sale(pk)
        announce("inventory", "sales")
        return Response(
            {
                "message": "Sale returned" if not result.warnings else "Sale returned with warnings",
                "sale_id": str(result.sale_id),
                "restored": result.restored,
                "warnings": result.warnings,
            },
            status=status.HTTP_200_OK,
        )


class SaleMarginView(APIView):
    permission_classes = [IsStoreStaff]

    def get(self, request):
        start = _day_bound(request.query_params.get("start"), "start")
        end = _day_bound(request.query_params.get("end"), "end", end=True)
        if start and end and start > end:
            raise ValidationFailed("start must not be after end", start=start, end=end)
        return Response(margin_summary(start=start, end=end))
