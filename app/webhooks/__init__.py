"""
Webhook handlers for BarberBook.
Receives payment notifications from Mercado Pago and Stripe and re-syncs the
appointment holding the charge.
"""
from .mercado_pago import mercado_pago_webhook_bp
from .stripe import stripe_webhook_bp

__all__ = [
    'mercado_pago_webhook_bp',
    'stripe_webhook_bp',
]
