from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import AddressSerializer, ProfileSerializer, UserStatisticsSerializer
from .services import CustomerService


class AddressViewSet(viewsets.ModelViewSet):
    """
    Address book of the calling user.
    Other users' addresses are invisible (404), never 403.
    """
    serializer_class = AddressSerializer
    pagination_class = None

    def get_queryset(self):
        is_default = self.request.query_params.get("is_default")
        if is_default is not None:
            is_default = is_default.lower() in ("1", "true", "yes")
        return CustomerService.list_addresses(
            self.request.user,
            address_type=self.request.query_params.get("type"),
            is_default=is_default,
        )

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        address = CustomerService.create_address(request.user, **serializer.validated_data)
        return Response(self.get_serializer(address).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        address = CustomerService.update_address(request.user, instance.pk, dict(serializer.validated_data))
        return Response(self.get_serializer(address).data)

    def destroy(self, request, *args, **kwargs):
        instance = self.get_object()
        CustomerService.delete_address(request.user, instance.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="default")
    def set_default(self, request, pk=None):
        """
        POST /api/users/addresses/{id}/default/
        """
        address = CustomerService.set_default_address(request.user, pk)
        return Response(self.get_serializer(address).data)


class ProfileView(mixins.RetrieveModelMixin, mixins.UpdateModelMixin, viewsets.GenericViewSet):
    serializer_class = ProfileSerializer

    def get_object(self):
        return self.request.user


class StatisticsView(APIView):
    def get(self, request):
        stats = CustomerService.get_statistics(request.user)
        return Response(UserStatisticsSerializer(stats).data)
