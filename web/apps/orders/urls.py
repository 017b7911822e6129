from django.urls import path
from .views import CancelOrderView, ConfirmPaymentView, OrdersCollectionView, RetrieveOrderView, TrackOrderView

app_name = "orders"

urlpatterns = [
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("track/<str:ref>/", TrackOrderView.as_view(), name="orders-track"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/confirm-payment/", ConfirmPaymentView.as_view(), name="orders-confirm-payment"),
    path("<uuid:oid>/cancel/", CancelOrderView.as_view(), name="orders-cancel"),
]
