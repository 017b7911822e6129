from django.urls import path
from .views import AdminOrderDetailView, AdminOrderNotificationsView, AdminOrdersView, AdminOrderStatusView

app_name = "orders-admin"

urlpatterns = [
    path("", AdminOrdersView.as_view(), name="orders"),
    path("<uuid:oid>/", AdminOrderDetailView.as_view(), name="order-detail"),
    path("<uuid:oid>/status/", AdminOrderStatusView.as_view(), name="order-status"),
    path("<uuid:oid>/notifications/", AdminOrderNotificationsView.as_view(), name="order-notifications"),
]
