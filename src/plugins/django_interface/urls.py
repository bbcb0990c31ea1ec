from django.conf import settings
from django.urls import path
from drf_yasg import openapi
from drf_yasg.views import get_schema_view
from rest_framework import permissions

from .views.billing_views import (
    AccountBalanceView,
    AccountCreditsView,
    AccountRecomputeView,
    CreditApplyView,
    CreditCreateView,
    CreditTransferView,
    HealthCheckView,
    InvoiceAdjustView,
    InvoiceCreateView,
    InvoiceDetailView,
    PaymentConfirmView,
    PaymentCreateView,
    PaymentDetailView,
    PaymentRefundableView,
    RefundApproveView,
    RefundConfirmView,
    RefundCreateView,
    RefundDeclineView,
    RefundDetailView,
    RefundProcessView,
)

swagger_permissions = [permissions.AllowAny] if settings.DEBUG else [permissions.IsAdminUser]

schema_view = get_schema_view(
    openapi.Info(
        title="Clinic Billing Ledger",
        default_version="v1",
        description="Faturas, pagamentos, créditos e reembolsos (CQRS + Bus)",
    ),
    public=settings.DEBUG,
    permission_classes=swagger_permissions,
)

urlpatterns = [
    path("healthz/", HealthCheckView.as_view(), name="healthz"),

    # Invoice Ledger
    path("invoices/", InvoiceCreateView.as_view(), name="invoice-create"),
    path("invoices/<uuid:invoice_id>/", InvoiceDetailView.as_view(), name="invoice-detail"),
    path("invoices/<uuid:invoice_id>/adjust/", InvoiceAdjustView.as_view(), name="invoice-adjust"),

    # Payment Processor
    path("payments/", PaymentCreateView.as_view(), name="payment-create"),
    path("payments/<uuid:payment_id>/", PaymentDetailView.as_view(), name="payment-detail"),
    path("payments/<uuid:payment_id>/confirm/", PaymentConfirmView.as_view(), name="payment-confirm"),
    path("payments/<uuid:payment_id>/refundable/", PaymentRefundableView.as_view(), name="payment-refundable"),

    # Credit Pool
    path("credits/", CreditCreateView.as_view(), name="credit-create"),
    path("credits/<uuid:credit_id>/apply/", CreditApplyView.as_view(), name="credit-apply"),
    path("credits/<uuid:credit_id>/transfer/", CreditTransferView.as_view(), name="credit-transfer"),

    # Account Balance
    path("accounts/<uuid:account_id>/balance/", AccountBalanceView.as_view(), name="account-balance"),
    path("accounts/<uuid:account_id>/recompute/", AccountRecomputeView.as_view(), name="account-recompute"),
    path("accounts/<uuid:account_id>/credits/", AccountCreditsView.as_view(), name="account-credits"),

    # Refund Engine
    path("refunds/", RefundCreateView.as_view(), name="refund-create"),
    path("refunds/<uuid:refund_id>/", RefundDetailView.as_view(), name="refund-detail"),
    path("refunds/<uuid:refund_id>/approve/", RefundApproveView.as_view(), name="refund-approve"),
    path("refunds/<uuid:refund_id>/decline/", RefundDeclineView.as_view(), name="refund-decline"),
    path("refunds/<uuid:refund_id>/process/", RefundProcessView.as_view(), name="refund-process"),
    path("refunds/<uuid:refund_id>/confirm/", RefundConfirmView.as_view(), name="refund-confirm"),

    path("swagger/",     schema_view.with_ui("swagger", cache_timeout=0), name="swagger-ui"),
    path("swagger.json", schema_view.without_ui(cache_timeout=0),         name="swagger-json"),
    path("redoc/",       schema_view.with_ui("redoc",   cache_timeout=0), name="redoc-ui"),
]
