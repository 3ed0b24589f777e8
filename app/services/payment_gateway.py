"""
Payment gateway abstraction for PIX prepayments.

Each tenant picks a provider in settings['payments']['provider']:
- mercado_pago (default): Mercado Pago REST API
- stripe: Stripe PaymentIntents with the pix payment method

All adapters take a caller-supplied idempotency key, normalise provider
statuses to ChargeStatus and raise GatewayError on provider failures.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from ..models.tenant import Tenant


class ChargeStatus(str, Enum):
    """Provider-independent charge status."""
    PENDING = 'pending'
    IN_PROCESS = 'in_process'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


class PaymentProvider(str, Enum):
    MERCADO_PAGO = 'mercado_pago'
    STRIPE = 'stripe'


def build_idempotency_key(external_reference: Optional[str] = None, prefix: str = 'charge') -> str:
    """
    Idempotency key for a gateway call.

    Derived from the external reference so a retried request reuses the same
    key; falls back to a time + random key when there is no reference.
    """
    if external_reference:
        return f'{prefix}-{external_reference}'
    return f'{prefix}-{int(datetime.utcnow().timestamp() * 1000)}-{uuid.uuid4().hex[:12]}'


class PaymentGateway:
    """
    Interface implemented by provider adapters.

    Amounts are Decimals in BRL with 2 fraction digits.
    """

    provider: str = None

    def __init__(self, tenant_id: int):
        self.tenant_id = tenant_id
        self._tenant = None

    @property
    def tenant(self) -> Optional[Tenant]:
        if self._tenant is None:
            self._tenant = Tenant.query.get(self.tenant_id)
        return self._tenant

    @property
    def settings(self) -> Dict[str, Any]:
        if not self.tenant:
            return {}
        return self.tenant.get_setting('payments', default={})

    def create_charge(
        self,
        amount: Decimal,
        description: str,
        idempotency_key: str,
        payer_name: str = None,
        payer_contact: str = None,
        external_reference: str = None,
    ) -> Dict[str, Any]:
        """
        Returns:
            Dict with charge_id, status and the scannable artifact
            (qr_code, qr_code_base64, ticket_url)
        """
        raise NotImplementedError

    def get_charge(self, charge_id: str) -> Dict[str, Any]:
        """Returns: Dict with charge_id, status and raw_status."""
        raise NotImplementedError

    def refund(self, charge_id: str, amount: Decimal, idempotency_key: str) -> Dict[str, Any]:
        """Returns: Dict with refund_id and status."""
        raise NotImplementedError


def get_payment_gateway(tenant_id: int) -> PaymentGateway:
    """Gateway adapter configured for a tenant."""
    from .mercado_pago_service import MercadoPagoService
    from .stripe_service import StripePixService

    tenant = Tenant.query.get(tenant_id)
    provider = PaymentProvider.MERCADO_PAGO.value
    if tenant:
        provider = tenant.get_setting('payments', 'provider', default=provider)

    if provider == PaymentProvider.STRIPE.value:
        return StripePixService(tenant_id)
    return MercadoPagoService(tenant_id)
