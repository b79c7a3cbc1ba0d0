from django.views.decorators.csrf import csrf_exempt
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response

from sweetshop.core.permissions import IsAdminRole
from sweetshop.core.utils import create_audit_log
from .serializers import SweetSerializer
from . import services

SAFE_METHODS = ('GET', 'HEAD', 'OPTIONS')


# Public read views: no authenticators run, so a stale token never breaks browsing
@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def sweet_list(request):
    """List sweets, optionally filtered by name, category and price range"""
    sweets = services.list_sweets(request.query_params)
    return Response(SweetSerializer(sweets, many=True).data)


sweet_search = sweet_list


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def sweet_retrieve(request, pk):
    """Retrieve a single sweet"""
    sweet = services.get_sweet(pk)
    return Response(SweetSerializer(sweet).data)


# Gated views: bearer authentication plus role checks
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def sweet_create(request):
    """Add a sweet to the inventory (admin only)"""
    sweet = services.create_sweet(request.data)
    create_audit_log(
        request=request,
        action='create',
        model_name='Sweet',
        object_id=sweet.id,
        object_name=sweet.name,
        changes={'category': sweet.category, 'price': str(sweet.price), 'quantity': sweet.quantity},
    )
    return Response(SweetSerializer(sweet).data, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def sweet_modify(request, pk):
    """Update or delete a sweet (admin only). PUT and PATCH both accept partial bodies."""
    if request.method == 'DELETE':
        sweet = services.get_sweet(pk)
        name = sweet.name
        services.delete_sweet(pk)
        create_audit_log(request=request, action='delete', model_name='Sweet', object_id=pk, object_name=name)
        return Response({'message': 'Deleted'})

    sweet = services.update_sweet(pk, request.data)
    create_audit_log(
        request=request,
        action='update',
        model_name='Sweet',
        object_id=sweet.id,
        object_name=sweet.name,
        changes={key: str(value) for key, value in request.data.items() if key != 'imageUrl'},
    )
    return Response(SweetSerializer(sweet).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sweet_purchase(request, pk):
    """Buy some units of a sweet (any signed-in account); quantity defaults to 1"""
    quantity = request.data.get('quantity')
    sweet = services.purchase_sweet(pk, quantity)
    create_audit_log(
        request=request,
        action='stock_purchase',
        model_name='Sweet',
        object_id=sweet.id,
        object_name=sweet.name,
        changes={'quantity': services.coerce_quantity(quantity, default=1), 'new_stock_quantity': sweet.quantity},
    )
    return Response(SweetSerializer(sweet).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def sweet_restock(request, pk):
    """Add units to a sweet's stock (admin only)"""
    quantity = request.data.get('quantity')
    sweet = services.restock_sweet(pk, quantity)
    create_audit_log(
        request=request,
        action='stock_restock',
        model_name='Sweet',
        object_id=sweet.id,
        object_name=sweet.name,
        changes={'quantity': services.coerce_quantity(quantity), 'new_stock_quantity': sweet.quantity},
    )
    return Response(SweetSerializer(sweet).data)


# Method routers for paths shared by a public read and a gated mutation.
# They pick the handler before DRF runs authentication.
@csrf_exempt
def sweet_collection(request):
    if request.method in SAFE_METHODS:
        return sweet_list(request)
    return sweet_create(request)


@csrf_exempt
def sweet_item(request, pk):
    if request.method in SAFE_METHODS:
        return sweet_retrieve(request, pk=pk)
    return sweet_modify(request, pk=pk)
