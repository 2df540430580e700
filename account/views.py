from rest_framework import permissions
from rest_framework.generics import CreateAPIView, ListCreateAPIView, RetrieveUpdateAPIView
from django.contrib.auth import get_user_model

from .permissions import IsStoreAdmin
from .serializers import StaffUserSerializer, UserSerializer

User = get_user_model()

class RegisterUserView(CreateAPIView):
    queryset = User.objects.all()
    permission_classes = [permissions.AllowAny]
    serializer_class = UserSerializer
class CurrentUserView(RetrieveUpdateAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = UserSerializer

    def get_object(self):
        return self.request.user
class StaffUserListCreateView(ListCreateAPIView):
    queryset = User.objects.filter(role__in=[User.Role.ADMIN, User.Role.CASHIER]).order_by("email")
    permission_classes = [permissions.IsAuthenticated, IsStoreAdmin]
    serializer_class = StaffUserSerializer
