from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from account.permissions import IsStoreStaff
from catalog.models import ProductVariant
from core.exceptions import EntityNotFound, ValidationFailed
from notifications.realtime import announce
from .models import InventoryLoss, SupplyBatch
from .serializers import InventoryLossSerializer, PullOutSerializer, SupplyBatchSerializer, UndoSupplySerializer
from .services import CostBasisService, SupplyLedgerService, quantize_money


class LedgerPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 200


def _get_batch(pk):
    batch = SupplyBatch.objects.filter(pk=pk).first()
    if not batch:
        raise EntityNotFound("Supply batch not found", supply_batch_id=pk)
    return batch


class VariantCostView(APIView):
    permission_classes = [IsStoreStaff]

    def get(self, request, pk):
        variant = ProductVariant.objects.select_related("product").filter(pk=pk).first()
        if not variant:
            raise EntityNotFound("Product variant not found", variant_id=pk)
        cost = CostBasisService.weighted_average_cost(variant)
        return Response(
            {
                "variant_id": str(variant.id),
                "product_name": variant.product.name,
                "quantity": variant.quantity,
                "weighted_average_cost": str(quantize_money(cost)),
                "stock_value": str(CostBasisService.loss_amount(variant, variant.quantity)),
            }
        )


class SupplyBatchListView(ListAPIView):
    """Supply ledger, newest first. ``?month=YYYY-MM`` and ``?variant=<id>`` narrow it down."""

    permission_classes = [IsStoreStaff]
    serializer_class = SupplyBatchSerializer
    pagination_class = LedgerPagination

    def get_queryset(self):
        qs = SupplyBatch.objects.all()
        variant_id = self.request.query_params.get("variant")
        month = self.request.query_params.get("month")
        if variant_id:
            qs = qs.filter(variant_id=variant_id)
        if month:
            try:
                year, month_number = (int(part) for part in month.split("-", 1))
            except ValueError:
                raise ValidationFailed("month must look like YYYY-MM", month=month)
            if not 1 <= month_number <= 12:
                raise ValidationFailed("month must look like YYYY-MM", month=month)
            qs = qs.filter(supplied_at__year=year, supplied_at__month=month_number)
        return qs


class SupplyBatchPullOutView(APIView):
    permission_classes = [IsStoreStaff]

    def post(self, request, pk):
        batch = _get_batch(pk)
        serializer = PullOutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = SupplyLedgerService.pull_out(batch, **serializer.validated_data)
        announce("inventory")
        return Response(SupplyBatchSerializer(batch).data, status=status.HTTP_200_OK)


class SupplyBatchUndoView(APIView):
    permission_classes = [IsStoreStaff]

    def post(self, request, pk):
        batch = _get_batch(pk)
        serializer = UndoSupplySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = SupplyLedgerService.undo_supply(batch, notes=serializer.validated_data["notes"])
        announce("inventory")
        return Response(SupplyBatchSerializer(batch).data, status=status.HTTP_200_OK)


class InventoryLossListView(ListAPIView):
    permission_classes = [IsStoreStaff]
    serializer_class = InventoryLossSerializer
    pagination_class = LedgerPagination

    def get_queryset(self):
        qs = InventoryLoss.objects.all()
        reason = self.request.query_params.get("reason")
        if reason:
            qs = qs.filter(reason=reason)
        return qs
