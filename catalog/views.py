from django.db.models import Prefetch
from rest_framework import status
from rest_framework.generics import ListCreateAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from account.permissions import IsStoreStaff, IsStoreStaffOrReadOnly
from core.exceptions import EntityNotFound
from notifications.realtime import announce
from .models import Category, Product, ProductVariant
from .serializers import (
    CategorySerializer,
    ProductSerializer,
    ProductVariantSerializer,
    ProductWriteSerializer,
    RemovalSerializer,
    RestockSerializer,
    VariantWriteSerializer,
)
from .services import ProductService, VariantService


def _product_queryset():
    return Product.objects.select_related("category").prefetch_related(
        Prefetch("variants", queryset=ProductVariant.objects.order_by("created_at"))
    )


def _get_product(pk):
    product = _product_queryset().filter(pk=pk).first()
    if not product:
        raise EntityNotFound("Product not found", product_id=pk)
    return product


def _get_variant(pk):
    variant = ProductVariant.objects.select_related("product").filter(pk=pk).first()
    if not variant:
        raise EntityNotFound("Product variant not found", variant_id=pk)
    return variant


class CategoryListCreateView(ListCreateAPIView):
    permission_classes = [IsStoreStaffOrReadOnly]
    queryset = Category.objects.order_by("name")
    serializer_class = CategorySerializer


class ProductListCreateView(APIView):
    permission_classes = [IsStoreStaffOrReadOnly]

    def get(self, request):
        qs = _product_queryset().order_by("name")
        category = request.query_params.get("category")
        search = request.query_params.get("search")
        if category:
            qs = qs.filter(category__name__iexact=category)
        if search:
            qs = qs.filter(name__icontains=search)
        return Response(ProductSerializer(qs, many=True).data)

    def post(self, request):
        serializer = ProductWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = ProductService.create_product(**serializer.validated_data)
        announce("inventory")
        return Response(ProductSerializer(_get_product(product.pk)).data, status=status.HTTP_201_CREATED)


class ProductDetailView(APIView):
    permission_classes = [IsStoreStaffOrReadOnly]

    def get(self, request, pk):
        return Response(ProductSerializer(_get_product(pk)).data)

    def patch(self, request, pk):
        product = _get_product(pk)
        serializer = ProductWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        data.pop("variants", None)
        ProductService.update_product(product, **data)
        announce("inventory")
        return Response(ProductSerializer(_get_product(pk)).data)

    def delete(self, request, pk):
        product = _get_product(pk)
        serializer = RemovalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        losses = ProductService.delete_product(product, notes=serializer.validated_data["notes"])
        announce("inventory")
        return Response(
            {
                "message": "Product deleted",
                "product_id": str(pk),
                "losses_recorded": len(losses),
            },
            status=status.HTTP_200_OK,
        )


class VariantCreateView(APIView):
    permission_classes = [IsStoreStaff]

    def post(self, request, pk):
        product = _get_product(pk)
        serializer = VariantWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        variant = VariantService.create_variant(product, **serializer.validated_data)
        announce("inventory")
        return Response(ProductVariantSerializer(variant).data, status=status.HTTP_201_CREATED)


class VariantDetailView(APIView):
    permission_classes = [IsStoreStaffOrReadOnly]

    def get(self, request, pk):
        return Response(ProductVariantSerializer(_get_variant(pk)).data)

    def patch(self, request, pk):
        variant = _get_variant(pk)
        serializer = VariantWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        variant = VariantService.update_variant(variant, **serializer.validated_data)
        announce("inventory")
        return Response(ProductVariantSerializer(variant).data)

    def delete(self, request, pk):
        variant = _get_variant(pk)
        serializer = RemovalSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        loss = VariantService.delete_variant(variant, notes=serializer.validated_data["notes"])
        announce("inventory")
        return Response(
            {
                "message": "Variant deleted",
                "variant_id": str(pk),
                "loss_id": str(loss.id) if loss else None,
                "loss_amount": loss.amount if loss else None,
            },
            status=status.HTTP_200_OK,
        )


class VariantRestockView(APIView):
    permission_classes = [IsStoreStaff]

    def post(self, request, pk):
        variant = _get_variant(pk)
        serializer = RestockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        variant = VariantService.restock(variant, **serializer.validated_data)
        announce("inventory")
        return Response(ProductVariantSerializer(variant).data)
