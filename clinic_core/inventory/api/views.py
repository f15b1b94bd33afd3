# clinic_core/inventory/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from clinic_core.common.actors import actor_name, actor_user_id
from clinic_core.common.api.filters import apply_filters
from clinic_core.common.api.pagination import paginate
from clinic_core.common.permissions import InventoryPermission
from clinic_core.common.scope import require_scope
from clinic_core.inventory.api.serializers import (
    InventoryItemCreateSerializer,
    InventoryItemSerializer,
    InventoryItemUpdateSerializer,
    InventoryLogSerializer,
    RestockSerializer,
    StockAdjustmentSerializer,
    StockAdjustSerializer,
    SupplierSerializer,
    SupplierWriteSerializer,
)
from clinic_core.inventory.filters import InventoryItemFilter, InventoryLogFilter
from clinic_core.inventory.models import InventoryItem, InventoryLog, Supplier
from clinic_core.inventory.selectors import (
    get_item,
    list_items,
    list_logs,
    list_low_stock_items,
    list_suppliers,
)
from clinic_core.inventory.services import InventoryLedger, InventoryService, SupplierService


class InventoryItemViewSet(viewsets.ViewSet):
    """
    Stock catalogue. Every stock change lands in the inventory log.
    """
    permission_classes = [InventoryPermission]

    serializer_class = InventoryItemSerializer
    queryset = InventoryItem.objects.none()

    @extend_schema(tags=["Inventory"], responses={200: InventoryItemSerializer(many=True)})
    def list(self, request):
        scope = require_scope(request)
        qs = list_items(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        qs = apply_filters(InventoryItemFilter, request, qs)
        return paginate(request, qs, InventoryItemSerializer)

    @extend_schema(tags=["Inventory"], responses={200: InventoryItemSerializer})
    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        item = get_item(tenant_id=scope.tenant_id, facility_id=scope.facility_id, item_id=UUID(str(pk)))
        return Response(InventoryItemSerializer(item).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Inventory"], request=InventoryItemCreateSerializer, responses={201: InventoryItemSerializer})
    def create(self, request):
        scope = require_scope(request)

        ser = InventoryItemCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        item = InventoryService.create_item(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor=actor_name(request.user),
            actor_user_id=actor_user_id(request.user),
            **ser.validated_data,
        )
        return Response(InventoryItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Inventory"], request=InventoryItemUpdateSerializer, responses={200: InventoryItemSerializer})
    def partial_update(self, request, pk=None):
        scope = require_scope(request)

        ser = InventoryItemUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        expected_version = data.pop("expected_version", None)
        reason = data.pop("reason", "") or "Updated details"

        item = InventoryService.update_item(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor=actor_name(request.user),
            actor_user_id=actor_user_id(request.user),
            item_id=UUID(str(pk)),
            data=data,
            expected_version=expected_version,
            reason=reason,
        )
        return Response(InventoryItemSerializer(item).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Inventory"], responses={204: None})
    def destroy(self, request, pk=None):
        scope = require_scope(request)
        InventoryService.delete_item(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor=actor_name(request.user),
            actor_user_id=actor_user_id(request.user),
            item_id=UUID(str(pk)),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(tags=["Inventory"], request=RestockSerializer, responses={200: StockAdjustmentSerializer})
    @action(detail=True, methods=["post"], url_path="restock")
    def restock(self, request, pk=None):
        scope = require_scope(request)

        ser = RestockSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        adjustment = InventoryService.restock(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor=actor_name(request.user),
            actor_user_id=actor_user_id(request.user),
            item_id=UUID(str(pk)),
            quantity=ser.validated_data["quantity"],
            notes=ser.validated_data.get("notes", ""),
        )
        return Response(StockAdjustmentSerializer(adjustment).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Inventory"], request=StockAdjustSerializer, responses={200: StockAdjustmentSerializer})
    @action(detail=True, methods=["post"], url_path="adjust")
    def adjust(self, request, pk=None):
        scope = require_scope(request)

        ser = StockAdjustSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        adjustment = InventoryLedger.adjust_stock(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            item_id=UUID(str(pk)),
            delta=ser.validated_data["delta"],
            reason=ser.validated_data["reason"],
            actor=actor_name(request.user),
            actor_user_id=actor_user_id(request.user),
            expected_version=ser.validated_data.get("expected_version"),
        )
        return Response(StockAdjustmentSerializer(adjustment).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Inventory"], responses={200: InventoryItemSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="low-stock")
    def low_stock(self, request):
        scope = require_scope(request)
        qs = list_low_stock_items(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        return Response(InventoryItemSerializer(qs, many=True).data, status=status.HTTP_200_OK)


class InventoryLogViewSet(viewsets.ViewSet):
    permission_classes = [InventoryPermission]

    serializer_class = InventoryLogSerializer
    queryset = InventoryLog.objects.none()

    @extend_schema(tags=["Inventory"], responses={200: InventoryLogSerializer(many=True)})
    def list(self, request):
        scope = require_scope(request)
        qs = list_logs(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        qs = apply_filters(InventoryLogFilter, request, qs)
        return paginate(request, qs, InventoryLogSerializer)


class SupplierViewSet(viewsets.ViewSet):
    permission_classes = [InventoryPermission]

    serializer_class = SupplierSerializer
    queryset = Supplier.objects.none()

    @extend_schema(tags=["Inventory"], responses={200: SupplierSerializer(many=True)})
    def list(self, request):
        scope = require_scope(request)
        qs = list_suppliers(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        return Response(SupplierSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Inventory"], request=SupplierWriteSerializer, responses={201: SupplierSerializer})
    def create(self, request):
        scope = require_scope(request)

        ser = SupplierWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        supplier = SupplierService.create_supplier(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            **ser.validated_data,
        )
        return Response(SupplierSerializer(supplier).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Inventory"], request=SupplierWriteSerializer, responses={200: SupplierSerializer})
    def partial_update(self, request, pk=None):
        scope = require_scope(request)

        ser = SupplierWriteSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        supplier = SupplierService.update_supplier(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            supplier_id=UUID(str(pk)),
            data=ser.validated_data,
        )
        return Response(SupplierSerializer(supplier).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Inventory"], responses={204: None})
    def destroy(self, request, pk=None):
        scope = require_scope(request)
        SupplierService.delete_supplier(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            supplier_id=UUID(str(pk)),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
