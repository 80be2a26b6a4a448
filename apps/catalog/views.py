from django_filters import rest_framework as django_filters
from rest_framework import filters, viewsets

from apps.accounts.permissions import IsAdminOrReadOnly
from apps.accounts.policies import is_admin

from .models import Category, Product
from .serializers import CategorySerializer, ProductSerializer


class ProductFilter(django_filters.FilterSet):
    min_price = django_filters.NumberFilter(field_name="price", lookup_expr="gte")
    max_price = django_filters.NumberFilter(field_name="price", lookup_expr="lte")
    category = django_filters.UUIDFilter(field_name="category_id")
    category_slug = django_filters.CharFilter(field_name="category__slug")

    class Meta:
        model = Product
        fields = ["in_stock", "category", "category_slug", "min_price", "max_price"]


class CategoryViewSet(viewsets.ModelViewSet):
    """
    Publicly readable category tree; admins manage it.
    """
    serializer_class = CategorySerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [filters.SearchFilter]
    search_fields = ["name"]
    lookup_field = "slug"

    def get_queryset(self):
        qs = Category.objects.all()
        if not is_admin(self.request.user):
            qs = qs.filter(is_active=True)
        if self.action == "list" and "parent" not in self.request.query_params:
            qs = qs.filter(parent__isnull=True)
        return qs


class ProductViewSet(viewsets.ModelViewSet):
    """
    Public product list. Admins also see inactive products and can write.
    Products are deactivated rather than deleted once ordered (OrderItem uses PROTECT).
    """
    serializer_class = ProductSerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [django_filters.DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = ProductFilter
    search_fields = ["title", "description", "sku"]
    ordering_fields = ["price", "created_at", "title"]
    lookup_field = "slug"

    def get_queryset(self):
        qs = Product.objects.select_related("category")
        if not is_admin(self.request.user):
            qs = qs.filter(is_active=True)
        return qs
