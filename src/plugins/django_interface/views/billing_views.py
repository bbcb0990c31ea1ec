# ╭────────────────────────────────────────────────────────────────────────────╮
# │  API de faturamento – camada HTTP fina sobre o BillingFacadeService        │
# │                                                                            │
# │  • Escopo         → cabeçalho `X-Clinic-Id` (obrigatório)                  │
# │  • Ator           → cabeçalho `X-Actor-Id` (opcional, vai para auditoria)  │
# │  • Envelope       → `{success, data}` ou `{success, error: {code, message}}`│
# ╰────────────────────────────────────────────────────────────────────────────╯
from __future__ import annotations

from typing import Any

import structlog
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from billing_ledger.adapters.config import composition_root
from billing_ledger.core.application.commands.credit_commands import (
    ApplyCreditCommand,
    CreateCreditCommand,
    TransferCreditCommand,
)
from billing_ledger.core.application.commands.invoice_commands import (
    AdjustInvoiceCommand,
    CreateInvoiceCommand,
    InvoiceItemInput,
    InvoicePatch,
    UpdateInvoiceCommand,
)
from billing_ledger.core.application.commands.payment_commands import (
    AllocationInput,
    ConfirmPaymentCommand,
    CreatePaymentCommand,
)
from billing_ledger.core.application.commands.refund_commands import (
    ApproveRefundCommand,
    ConfirmRefundCommand,
    DeclineRefundCommand,
    ProcessRefundCommand,
    RequestRefundCommand,
)
from billing_ledger.core.application.dtos.operation_result import OperationResult
from billing_ledger.core.application.services.billing_service import BillingFacadeService
from plugins.django_interface.permissions import HasClinicHeader, clinic_id_from
from plugins.django_interface.serializers.billing_serializers import (
    AccountBalanceSerializer,
    AdjustInvoiceInputSerializer,
    ApplyCreditInputSerializer,
    ApproveRefundInputSerializer,
    CreateCreditInputSerializer,
    CreateInvoiceInputSerializer,
    CreatePaymentInputSerializer,
    CreditSerializer,
    CreditTransferSerializer,
    DeclineRefundInputSerializer,
    GatewayStatusInputSerializer,
    InvoiceSerializer,
    PaymentSerializer,
    RefundAvailabilitySerializer,
    RefundSerializer,
    RequestRefundInputSerializer,
    TransferCreditInputSerializer,
    UpdateInvoiceInputSerializer,
)

logger = structlog.get_logger(__name__)

# ───────────────────────────────  Códigos → HTTP  ────────────────────────────
ERROR_STATUS: dict[str, int] = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "UNALLOCATED_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "ALLOCATION_EXCEEDS_PAYMENT": status.HTTP_400_BAD_REQUEST,
    "REASON_REQUIRED": status.HTTP_400_BAD_REQUEST,
    "ACCOUNT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "DEST_ACCOUNT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVOICE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PAYMENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CREDIT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "REFUND_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_INVOICE_STATE": status.HTTP_409_CONFLICT,
    "INVALID_PAYMENT_STATE": status.HTTP_409_CONFLICT,
    "INVALID_REFUND_STATE": status.HTTP_409_CONFLICT,
    "INVALID_CREDIT_STATE": status.HTTP_409_CONFLICT,
    "INSUFFICIENT_CREDIT": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "AMOUNT_EXCEEDS_BALANCE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "REFUND_EXCEEDS_AVAILABLE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "PAYMENT_FAILED": status.HTTP_502_BAD_GATEWAY,
    "REFUND_FAILED": status.HTTP_502_BAD_GATEWAY,
}


# ╭──────────────────────────────────────────────────────────────────────────╮
# │ Base                                                                     │
# ╰──────────────────────────────────────────────────────────────────────────╯
class BillingAPIView(APIView):
    permission_classes = [HasClinicHeader]

    @property
    def facade(self) -> BillingFacadeService:
        return composition_root.container.billing_facade_service()

    @staticmethod
    def clinic_id(request):
        return clinic_id_from(request)

    @staticmethod
    def actor_id(request) -> str | None:
        return request.headers.get("X-Actor-Id")

    @staticmethod
    def validated(serializer_cls, data) -> tuple[dict | None, Response | None]:
        serializer = serializer_cls(data=data)
        if serializer.is_valid():
            return serializer.validated_data, None
        return None, Response(
            {
                "success": False,
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Payload inválido",
                    "fields": serializer.errors,
                },
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    @staticmethod
    def respond(
        result: OperationResult[Any],
        serializer_cls=None,
        *,
        many: bool = False,
        ok_status: int = status.HTTP_200_OK,
    ) -> Response:
        if result.success:
            data = serializer_cls(result.data, many=many).data if serializer_cls else None
            return Response({"success": True, "data": data}, status=ok_status)
        http_status = ERROR_STATUS.get(result.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if http_status >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("http.billing_error", **result.error)
        return Response({"success": False, "error": result.error}, status=http_status)


class HealthCheckView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return Response({"status": "ok"})


# ╭──────────────────────────────────────────────╮
# │      INVOICES                               │
# ╰──────────────────────────────────────────────╯
class InvoiceCreateView(BillingAPIView):
    def post(self, request):
        data, error = self.validated(CreateInvoiceInputSerializer, request.data)
        if error:
            return error
        cmd = CreateInvoiceCommand(
            account_id=data["account_id"],
            items=tuple(InvoiceItemInput(**item) for item in data["items"]),
            due_date=data["due_date"],
            invoice_date=data.get("invoice_date"),
            status=data["status"],
            adjustments=data["adjustments"],
            notes=data.get("notes"),
            clinic_id=self.clinic_id(request),
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.create_invoice(cmd), InvoiceSerializer, ok_status=status.HTTP_201_CREATED)


class InvoiceDetailView(BillingAPIView):
    def get(self, request, invoice_id):
        return self.respond(self.facade.get_invoice(invoice_id, self.clinic_id(request)), InvoiceSerializer)

    def patch(self, request, invoice_id):
        data, error = self.validated(UpdateInvoiceInputSerializer, request.data)
        if error:
            return error
        cmd = UpdateInvoiceCommand(
            invoice_id=invoice_id,
            patch=InvoicePatch(**data),
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.update_invoice(cmd, self.clinic_id(request)), InvoiceSerializer)


class InvoiceAdjustView(BillingAPIView):
    def post(self, request, invoice_id):
        data, error = self.validated(AdjustInvoiceInputSerializer, request.data)
        if error:
            return error
        cmd = AdjustInvoiceCommand(
            invoice_id=invoice_id,
            amount=data["amount"],
            reason=data["reason"],
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.adjust_invoice(cmd, self.clinic_id(request)), InvoiceSerializer)


# ╭──────────────────────────────────────────────╮
# │      PAYMENTS                               │
# ╰──────────────────────────────────────────────╯
class PaymentCreateView(BillingAPIView):
    def post(self, request):
        data, error = self.validated(CreatePaymentInputSerializer, request.data)
        if error:
            return error
        cmd = CreatePaymentCommand(
            account_id=data["account_id"],
            amount=data["amount"],
            method_type=data["method_type"],
            allocations=tuple(AllocationInput(**a) for a in data["allocations"]),
            request_id=data.get("request_id"),
            notes=data.get("notes"),
            clinic_id=self.clinic_id(request),
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.create_payment(cmd), PaymentSerializer, ok_status=status.HTTP_201_CREATED)


class PaymentDetailView(BillingAPIView):
    def get(self, request, payment_id):
        return self.respond(self.facade.get_payment(payment_id, self.clinic_id(request)), PaymentSerializer)


class PaymentConfirmView(BillingAPIView):
    def post(self, request, payment_id):
        data, error = self.validated(GatewayStatusInputSerializer, request.data)
        if error:
            return error
        cmd = ConfirmPaymentCommand(
            payment_id=payment_id,
            gateway_status=data["gateway_status"],
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.confirm_payment(cmd, self.clinic_id(request)), PaymentSerializer)


class PaymentRefundableView(BillingAPIView):
    def get(self, request, payment_id):
        result = self.facade.get_available_for_refund(payment_id, self.clinic_id(request))
        return self.respond(result, RefundAvailabilitySerializer)


# ╭──────────────────────────────────────────────╮
# │      CREDITS                                │
# ╰──────────────────────────────────────────────╯
class CreditCreateView(BillingAPIView):
    def post(self, request):
        data, error = self.validated(CreateCreditInputSerializer, request.data)
        if error:
            return error
        cmd = CreateCreditCommand(
            account_id=data["account_id"],
            amount=data["amount"],
            source=data["source"],
            expires_at=data.get("expires_at"),
            description=data.get("description"),
            clinic_id=self.clinic_id(request),
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.create_credit(cmd), CreditSerializer, ok_status=status.HTTP_201_CREATED)


class CreditApplyView(BillingAPIView):
    def post(self, request, credit_id):
        data, error = self.validated(ApplyCreditInputSerializer, request.data)
        if error:
            return error
        cmd = ApplyCreditCommand(
            credit_id=credit_id,
            invoice_id=data["invoice_id"],
            amount=data["amount"],
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.apply_credit(cmd, self.clinic_id(request)), CreditSerializer)


class CreditTransferView(BillingAPIView):
    def post(self, request, credit_id):
        data, error = self.validated(TransferCreditInputSerializer, request.data)
        if error:
            return error
        cmd = TransferCreditCommand(
            credit_id=credit_id,
            to_account_id=data["to_account_id"],
            amount=data["amount"],
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.transfer_credit(cmd, self.clinic_id(request)), CreditTransferSerializer)


# ╭──────────────────────────────────────────────╮
# │      ACCOUNTS                               │
# ╰──────────────────────────────────────────────╯
class AccountBalanceView(BillingAPIView):
    def get(self, request, account_id):
        return self.respond(
            self.facade.get_account_balance(account_id, self.clinic_id(request)), AccountBalanceSerializer
        )


class AccountRecomputeView(BillingAPIView):
    def post(self, request, account_id):
        return self.respond(
            self.facade.recompute_account_balance(account_id, self.clinic_id(request)), AccountBalanceSerializer
        )


class AccountCreditsView(BillingAPIView):
    def get(self, request, account_id):
        result = self.facade.list_available_credits(account_id, self.clinic_id(request))
        return self.respond(result, CreditSerializer, many=True)


# ╭──────────────────────────────────────────────╮
# │      REFUNDS                                │
# ╰──────────────────────────────────────────────╯
class RefundCreateView(BillingAPIView):
    def post(self, request):
        data, error = self.validated(RequestRefundInputSerializer, request.data)
        if error:
            return error
        cmd = RequestRefundCommand(
            payment_id=data["payment_id"],
            reason=data["reason"],
            amount=data.get("amount"),
            reason_details=data.get("reason_details"),
            actor_id=self.actor_id(request),
        )
        result = self.facade.request_refund(cmd, self.clinic_id(request))
        return self.respond(result, RefundSerializer, ok_status=status.HTTP_201_CREATED)


class RefundDetailView(BillingAPIView):
    def get(self, request, refund_id):
        return self.respond(self.facade.get_refund(refund_id, self.clinic_id(request)), RefundSerializer)


class RefundApproveView(BillingAPIView):
    def post(self, request, refund_id):
        data, error = self.validated(ApproveRefundInputSerializer, request.data)
        if error:
            return error
        cmd = ApproveRefundCommand(refund_id=refund_id, actor_id=self.actor_id(request), notes=data.get("notes"))
        return self.respond(self.facade.approve_refund(cmd, self.clinic_id(request)), RefundSerializer)


class RefundDeclineView(BillingAPIView):
    def post(self, request, refund_id):
        data, error = self.validated(DeclineRefundInputSerializer, request.data)
        if error:
            return error
        cmd = DeclineRefundCommand(refund_id=refund_id, reason=data["reason"], actor_id=self.actor_id(request))
        return self.respond(self.facade.decline_refund(cmd, self.clinic_id(request)), RefundSerializer)


class RefundProcessView(BillingAPIView):
    def post(self, request, refund_id):
        cmd = ProcessRefundCommand(refund_id=refund_id, actor_id=self.actor_id(request))
        return self.respond(self.facade.process_refund(cmd, self.clinic_id(request)), RefundSerializer)


class RefundConfirmView(BillingAPIView):
    def post(self, request, refund_id):
        data, error = self.validated(GatewayStatusInputSerializer, request.data)
        if error:
            return error
        cmd = ConfirmRefundCommand(
            refund_id=refund_id,
            gateway_status=data["gateway_status"],
            actor_id=self.actor_id(request),
        )
        return self.respond(self.facade.confirm_refund(cmd, self.clinic_id(request)), RefundSerializer)
