from decimal import Decimal

from dependency_injector import containers, providers

container = None


def setup_di_container_from_settings(settings):
    """Inicializa o container global após o Django já estar com settings carregados."""
    global container  # noqa: PLW0603
    if container is not None:
        import structlog
        structlog.get_logger().debug("di.container_already_initialized")
        return container
    container = build_container(settings)
    return container


def build_container(settings, *, payment_gateway=None, refund_approval_threshold=None):  # noqa: PLR0915
    """
    Monta um container novo. `payment_gateway` substitui o cliente HTTP
    (usado nos testes); `refund_approval_threshold` sobrescreve o setting.
    """
    import structlog

    # ------- ADAPTERS -------
    from billing_ledger.adapters.api_clients.payment_gateway_client import HttpPaymentGatewayClient
    from billing_ledger.adapters.audit.audit_log_subscriber import AuditLogSubscriber
    from billing_ledger.adapters.numbering.django_counter_service import DjangoCounterService
    from billing_ledger.adapters.repositories.audit_log_repo_impl import AuditLogRepoImpl
    from billing_ledger.adapters.repositories.credit_repo_impl import CreditRepoImpl
    from billing_ledger.adapters.repositories.invoice_repo_impl import InvoiceRepoImpl
    from billing_ledger.adapters.repositories.patient_account_repo_impl import PatientAccountRepoImpl
    from billing_ledger.adapters.repositories.payment_repo_impl import PaymentRepoImpl
    from billing_ledger.adapters.repositories.refund_repo_impl import RefundRepoImpl

    # ------- COMMANDS / QUERIES -------
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
    from billing_ledger.core.application.commands.payment_commands import (
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

    # CQRS
    from billing_ledger.core.application.cqrs import CommandBus, QueryBus

    # Handlers
    from billing_ledger.core.application.handlers.account_handlers import (
        GetAccountBalanceHandler,
        GetAvailableForRefundHandler,
        GetCreditHandler,
        GetInvoiceHandler,
        GetPaymentHandler,
        GetRefundHandler,
        ListAvailableCreditsHandler,
        RecomputeAccountBalanceHandler,
    )
    from billing_ledger.core.application.handlers.credit_handlers import (
        ApplyCreditHandler,
        CreateCreditHandler,
        TransferCreditHandler,
    )
    from billing_ledger.core.application.handlers.invoice_handlers import (
        AdjustInvoiceHandler,
        CreateInvoiceHandler,
        UpdateInvoiceHandler,
    )
    from billing_ledger.core.application.handlers.payment_handlers import (
        ConfirmPaymentHandler,
        CreatePaymentHandler,
    )
    from billing_ledger.core.application.handlers.refund_handlers import (
        ApproveRefundHandler,
        ConfirmRefundHandler,
        DeclineRefundHandler,
        ProcessRefundHandler,
        RequestRefundHandler,
    )
    from billing_ledger.core.application.queries.billing_queries import (
        GetAccountBalanceQuery,
        GetAvailableForRefundQuery,
        GetCreditQuery,
        GetInvoiceQuery,
        GetPaymentQuery,
        GetRefundQuery,
        ListAvailableCreditsQuery,
    )

    # Serviços de aplicação
    from billing_ledger.core.application.services.account_balance_service import AccountBalanceService
    from billing_ledger.core.application.services.billing_service import BillingFacadeService
    from billing_ledger.core.application.services.invoice_ledger_service import InvoiceLedgerService
    from billing_ledger.core.application.services.refund_settlement_service import RefundSettlementService

    # Domínio
    from billing_ledger.core.domain.services.counter_service import DocumentNumberGenerator
    from billing_ledger.core.domain.services.event_dispatcher import EventDispatcher

    # ------- DECLARAÇÃO DO CONTAINER -------
    class Container(containers.DeclarativeContainer):
        config = providers.Configuration()

        # Infra
        event_dispatcher = providers.Singleton(EventDispatcher)
        command_bus = providers.Singleton(CommandBus)
        query_bus = providers.Singleton(QueryBus)

        payment_gateway = providers.Singleton(
            HttpPaymentGatewayClient,
            base_url=config.gateway.base_url,
            api_key=config.gateway.api_key,
            timeout=config.gateway.timeout,
        )

        # Repositórios (Ports → Adapters)
        account_repo = providers.Singleton(PatientAccountRepoImpl)
        invoice_repo = providers.Singleton(InvoiceRepoImpl)
        payment_repo = providers.Singleton(PaymentRepoImpl)
        credit_repo = providers.Singleton(CreditRepoImpl)
        refund_repo = providers.Singleton(RefundRepoImpl)
        audit_log_repo = providers.Singleton(AuditLogRepoImpl)

        counter_service = providers.Singleton(DjangoCounterService)
        numbers = providers.Singleton(DocumentNumberGenerator, counter=counter_service)

        # Serviços de negócio
        ledger = providers.Singleton(InvoiceLedgerService, invoice_repo=invoice_repo)
        balance_service = providers.Singleton(
            AccountBalanceService,
            account_repo=account_repo,
            invoice_repo=invoice_repo,
            credit_repo=credit_repo,
        )
        refund_settlement = providers.Singleton(
            RefundSettlementService,
            payment_repo=payment_repo,
            refund_repo=refund_repo,
            ledger=ledger,
            balance_service=balance_service,
            gateway=payment_gateway,
        )
        audit_subscriber = providers.Singleton(AuditLogSubscriber, repo=audit_log_repo)

        # Facade exposto às views/tasks/CLI
        billing_facade_service = providers.Singleton(
            BillingFacadeService,
            command_bus=command_bus,
            query_bus=query_bus,
        )

        # Handlers: Invoice Ledger
        create_invoice_handler = providers.Factory(
            CreateInvoiceHandler,
            account_repo=account_repo,
            invoice_repo=invoice_repo,
            numbers=numbers,
            balance_service=balance_service,
            dispatcher=event_dispatcher,
        )
        update_invoice_handler = providers.Factory(
            UpdateInvoiceHandler,
            invoice_repo=invoice_repo,
            balance_service=balance_service,
            dispatcher=event_dispatcher,
        )
        adjust_invoice_handler = providers.Factory(
            AdjustInvoiceHandler,
            invoice_repo=invoice_repo,
            balance_service=balance_service,
            dispatcher=event_dispatcher,
        )

        # Handlers: Payment Processor
        create_payment_handler = providers.Factory(
            CreatePaymentHandler,
            account_repo=account_repo,
            payment_repo=payment_repo,
            ledger=ledger,
            balance_service=balance_service,
            numbers=numbers,
            gateway=payment_gateway,
            dispatcher=event_dispatcher,
            currency=config.currency,
        )
        confirm_payment_handler = providers.Factory(
            ConfirmPaymentHandler,
            payment_repo=payment_repo,
            ledger=ledger,
            balance_service=balance_service,
            dispatcher=event_dispatcher,
        )

        # Handlers: Credit Pool
        create_credit_handler = providers.Factory(
            CreateCreditHandler,
            account_repo=account_repo,
            credit_repo=credit_repo,
            balance_service=balance_service,
            dispatcher=event_dispatcher,
        )
        apply_credit_handler = providers.Factory(
            ApplyCreditHandler,
            credit_repo=credit_repo,
            ledger=ledger,
            balance_service=balance_service,
            dispatcher=event_dispatcher,
        )
        transfer_credit_handler = providers.Factory(
            TransferCreditHandler,
            account_repo=account_repo,
            credit_repo=credit_repo,
            balance_service=balance_service,
            dispatcher=event_dispatcher,
        )

        # Handlers: Refund Engine
        request_refund_handler = providers.Factory(
            RequestRefundHandler,
            payment_repo=payment_repo,
            refund_repo=refund_repo,
            numbers=numbers,
            settlement=refund_settlement,
            dispatcher=event_dispatcher,
            approval_threshold=config.refund_approval_threshold,
        )
        approve_refund_handler = providers.Factory(
            ApproveRefundHandler, refund_repo=refund_repo, dispatcher=event_dispatcher
        )
        decline_refund_handler = providers.Factory(
            DeclineRefundHandler, refund_repo=refund_repo, dispatcher=event_dispatcher
        )
        process_refund_handler = providers.Factory(
            ProcessRefundHandler,
            payment_repo=payment_repo,
            refund_repo=refund_repo,
            settlement=refund_settlement,
            dispatcher=event_dispatcher,
        )
        confirm_refund_handler = providers.Factory(
            ConfirmRefundHandler,
            refund_repo=refund_repo,
            settlement=refund_settlement,
            dispatcher=event_dispatcher,
        )

        # Handlers: Account Balance
        recompute_balance_handler = providers.Factory(RecomputeAccountBalanceHandler, balance_service=balance_service)

        # Handlers de Queries
        get_account_balance_handler = providers.Factory(GetAccountBalanceHandler, account_repo=account_repo)
        list_available_credits_handler = providers.Factory(
            ListAvailableCreditsHandler, account_repo=account_repo, credit_repo=credit_repo
        )
        get_available_for_refund_handler = providers.Factory(
            GetAvailableForRefundHandler, payment_repo=payment_repo, refund_repo=refund_repo
        )
        get_invoice_handler = providers.Factory(GetInvoiceHandler, invoice_repo=invoice_repo)
        get_payment_handler = providers.Factory(GetPaymentHandler, payment_repo=payment_repo)
        get_refund_handler = providers.Factory(GetRefundHandler, refund_repo=refund_repo)
        get_credit_handler = providers.Factory(GetCreditHandler, credit_repo=credit_repo)

        def init(self):
            bus = self.command_bus()

            # Invoice Ledger
            bus.register(CreateInvoiceCommand, self.create_invoice_handler())
            bus.register(UpdateInvoiceCommand, self.update_invoice_handler())
            bus.register(AdjustInvoiceCommand, self.adjust_invoice_handler())

            # Payment Processor
            bus.register(CreatePaymentCommand, self.create_payment_handler())
            bus.register(ConfirmPaymentCommand, self.confirm_payment_handler())

            # Credit Pool
            bus.register(CreateCreditCommand, self.create_credit_handler())
            bus.register(ApplyCreditCommand, self.apply_credit_handler())
            bus.register(TransferCreditCommand, self.transfer_credit_handler())

            # Refund Engine
            bus.register(RequestRefundCommand, self.request_refund_handler())
            bus.register(ApproveRefundCommand, self.approve_refund_handler())
            bus.register(DeclineRefundCommand, self.decline_refund_handler())
            bus.register(ProcessRefundCommand, self.process_refund_handler())
            bus.register(ConfirmRefundCommand, self.confirm_refund_handler())

            # Account Balance
            bus.register(RecomputeAccountBalanceCommand, self.recompute_balance_handler())

            qb = self.query_bus()
            qb.register(GetAccountBalanceQuery, self.get_account_balance_handler())
            qb.register(ListAvailableCreditsQuery, self.list_available_credits_handler())
            qb.register(GetAvailableForRefundQuery, self.get_available_for_refund_handler())
            qb.register(GetInvoiceQuery, self.get_invoice_handler())
            qb.register(GetPaymentQuery, self.get_payment_handler())
            qb.register(GetRefundQuery, self.get_refund_handler())
            qb.register(GetCreditQuery, self.get_credit_handler())

            # Auditoria pós-commit
            self.audit_subscriber().register(self.event_dispatcher())

    # ------- INSTANCIAÇÃO E CONFIG -------
    new_container = Container()
    new_container.config.currency.from_value(settings.BILLING_CURRENCY)
    new_container.config.refund_approval_threshold.from_value(
        Decimal(str(refund_approval_threshold if refund_approval_threshold is not None
                    else settings.REFUND_APPROVAL_THRESHOLD))
    )
    new_container.config.gateway.base_url.from_value(settings.PAYMENT_GATEWAY_BASE_URL)
    new_container.config.gateway.api_key.from_value(settings.PAYMENT_GATEWAY_API_KEY)
    new_container.config.gateway.timeout.from_value(settings.PAYMENT_GATEWAY_TIMEOUT)
    if payment_gateway is not None:
        new_container.payment_gateway.override(providers.Object(payment_gateway))

    Container.init(new_container)
    structlog.get_logger(__name__).debug("di.container_ready", gateway=type(new_container.payment_gateway()).__name__)
    return new_container
