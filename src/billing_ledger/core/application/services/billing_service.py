from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from billing_ledger.core.application.commands.account_commands import RecomputeAccountBalanceCommand
from billing_ledger.core.application.commands.credit_commands import (
    ApplyCreditCommand,
    CreateCreditCommand,
    TransferCreditCommand,
)
from billing_ledger.core.application.commands.invoice_commands import (
    AdjustInvoiceCommand,
    CreateInvoiceCommand,
    UpdateInvoiceCommand,
)
from billing_ledger.core.application.commands.payment_commands import ConfirmPaymentCommand, CreatePaymentCommand
from billing_ledger.core.application.commands.refund_commands import (
    ApproveRefundCommand,
    ConfirmRefundCommand,
    DeclineRefundCommand,
    ProcessRefundCommand,
    RequestRefundCommand,
)
from billing_ledger.core.application.cqrs import BaseService, CommandBus, QueryBus, QueryDTO
from billing_ledger.core.application.dtos.operation_result import OperationResult
from billing_ledger.core.application.queries.billing_queries import (
    GetAccountBalanceQuery,
    GetAvailableForRefundQuery,
    GetCreditQuery,
    GetInvoiceQuery,
    GetPaymentQuery,
    GetRefundQuery,
    ListAvailableCreditsQuery,
)
from billing_ledger.core.domain.events.exceptions import BillingError

logger = structlog.get_logger(__name__)


class BillingFacadeService(BaseService):
    """
    Superfície única de operações usada pelas views, tasks e comandos de gestão.

    Toda chamada retorna `OperationResult`: sucesso com payload ou
    `{code, message}` de um `BillingError`. Erros inesperados propagam.

    Comandos que recebem só o id do registro (fatura, crédito, pagamento,
    reembolso) aceitam `clinic_id` e verificam o escopo antes do dispatch.
    """

    def __init__(self, command_bus: CommandBus, query_bus: QueryBus) -> None:
        super().__init__(command_bus, query_bus)

    # ------------------------------------------------ infra
    @staticmethod
    def _run(operation: Callable[[], Any]) -> OperationResult[Any]:
        try:
            return OperationResult.ok(operation())
        except BillingError as exc:
            logger.debug("operation.failed", code=exc.code, error=exc.message)
            return OperationResult.failure(exc)

    def _in_scope(self, query: QueryDTO, clinic_id) -> None:
        if clinic_id is not None:
            self.query(query)

    def _scoped_command(self, scope_query: QueryDTO, clinic_id, command) -> OperationResult[Any]:
        def _op():
            self._in_scope(scope_query, clinic_id)
            return self.execute(command)
        return self._run(_op)

    # ------------------------------------------------ invoice ledger
    def create_invoice(self, cmd: CreateInvoiceCommand) -> OperationResult[Any]:
        return self._run(lambda: self.execute(cmd))

    def update_invoice(self, cmd: UpdateInvoiceCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetInvoiceQuery(cmd.invoice_id, clinic_id), clinic_id, cmd)

    def adjust_invoice(self, cmd: AdjustInvoiceCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetInvoiceQuery(cmd.invoice_id, clinic_id), clinic_id, cmd)

    def get_invoice(self, invoice_id, clinic_id=None) -> OperationResult[Any]:
        return self._run(lambda: self.query(GetInvoiceQuery(invoice_id, clinic_id)))

    # ------------------------------------------------ payments
    def create_payment(self, cmd: CreatePaymentCommand) -> OperationResult[Any]:
        return self._run(lambda: self.execute(cmd))

    def confirm_payment(self, cmd: ConfirmPaymentCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetPaymentQuery(cmd.payment_id, clinic_id), clinic_id, cmd)

    def get_payment(self, payment_id, clinic_id=None) -> OperationResult[Any]:
        return self._run(lambda: self.query(GetPaymentQuery(payment_id, clinic_id)))

    # ------------------------------------------------ credit pool
    def create_credit(self, cmd: CreateCreditCommand) -> OperationResult[Any]:
        return self._run(lambda: self.execute(cmd))

    def apply_credit(self, cmd: ApplyCreditCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetCreditQuery(cmd.credit_id, clinic_id), clinic_id, cmd)

    def transfer_credit(self, cmd: TransferCreditCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetCreditQuery(cmd.credit_id, clinic_id), clinic_id, cmd)

    def list_available_credits(self, account_id, clinic_id=None) -> OperationResult[Any]:
        return self._run(lambda: self.query(ListAvailableCreditsQuery(account_id, clinic_id)))

    # ------------------------------------------------ refunds
    def request_refund(self, cmd: RequestRefundCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetPaymentQuery(cmd.payment_id, clinic_id), clinic_id, cmd)

    def approve_refund(self, cmd: ApproveRefundCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetRefundQuery(cmd.refund_id, clinic_id), clinic_id, cmd)

    def decline_refund(self, cmd: DeclineRefundCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetRefundQuery(cmd.refund_id, clinic_id), clinic_id, cmd)

    def process_refund(self, cmd: ProcessRefundCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetRefundQuery(cmd.refund_id, clinic_id), clinic_id, cmd)

    def confirm_refund(self, cmd: ConfirmRefundCommand, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(GetRefundQuery(cmd.refund_id, clinic_id), clinic_id, cmd)

    def get_refund(self, refund_id, clinic_id=None) -> OperationResult[Any]:
        return self._run(lambda: self.query(GetRefundQuery(refund_id, clinic_id)))

    def get_available_for_refund(self, payment_id, clinic_id=None) -> OperationResult[Any]:
        return self._run(lambda: self.query(GetAvailableForRefundQuery(payment_id, clinic_id)))

    # ------------------------------------------------ account balance
    def recompute_account_balance(self, account_id, clinic_id=None) -> OperationResult[Any]:
        return self._scoped_command(
            GetAccountBalanceQuery(account_id, clinic_id),
            clinic_id,
            RecomputeAccountBalanceCommand(account_id=account_id),
        )

    def get_account_balance(self, account_id, clinic_id=None) -> OperationResult[Any]:
        return self._run(lambda: self.query(GetAccountBalanceQuery(account_id, clinic_id)))
