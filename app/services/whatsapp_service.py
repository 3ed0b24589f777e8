"""
WhatsApp messaging service for BarberBook.

Sends text messages to clients through a WUZAPI instance connected to the
barbershop's own WhatsApp number:
- Payment confirmed, with the 4-digit check-in code
- Reservation expired because the PIX was not paid in time
- Loyalty redemption code

Messaging is fire-and-forget: every public method returns a result dict and
never raises, so a failed delivery cannot roll back the state change that
triggered it. Operators can still relay codes manually from the dashboard.

Configuration:
- WHATSAPP_API_URL: WUZAPI base URL
- Tenant settings.integrations.whatsapp: {'enabled', 'api_token', 'instance_name'}
"""
import re
from typing import Any, Dict, Optional

import requests
from flask import current_app

from ..models.tenant import Tenant


class WhatsAppService:
    """
    WUZAPI text messaging for one tenant.

    API Documentation: https://github.com/asternic/wuzapi

    Usage:
        service = WhatsAppService(tenant_id)
        if service.is_enabled():
            service.send_text(client_phone, 'Olá!')
    """

    TEMPLATES = {
        'payment_confirmed': (
            'Olá {client_name}! Seu pagamento foi confirmado e seu horário em '
            '{shop_name} está garantido para {scheduled_at}.\n\n'
            'Código de confirmação: *{confirmation_code}*\n'
            'Apresente este código ao barbeiro na chegada. '
            'Tolerância de 10 minutos após o horário marcado.'
        ),
        'payment_expired': (
            'Olá {client_name}! O prazo para pagamento do PIX do seu horário em '
            '{shop_name} ({scheduled_at}) expirou e a reserva foi cancelada. '
            'Faça um novo agendamento quando quiser.'
        ),
        'redemption_code': (
            'Olá {client_name}! Seu resgate de *{reward_name}* em {shop_name} '
            'foi gerado.\n\nCódigo de validação: *{validation_code}*\n'
            'Apresente este código na barbearia em até 24 horas.'
        ),
    }

    def __init__(self, tenant_id: int):
        self.tenant_id = tenant_id
        self._tenant = None
        self._settings = None

    @property
    def tenant(self) -> Optional[Tenant]:
        if self._tenant is None:
            self._tenant = Tenant.query.get(self.tenant_id)
        return self._tenant

    @property
    def settings(self) -> Dict[str, Any]:
        if self._settings is None:
            self._settings = {}
            if self.tenant:
                self._settings = self.tenant.get_setting('integrations', 'whatsapp', default={})
        return self._settings

    @property
    def api_token(self) -> Optional[str]:
        return self.settings.get('api_token')

    @property
    def base_url(self) -> Optional[str]:
        return current_app.config.get('WHATSAPP_API_URL')

    def is_enabled(self) -> bool:
        """Check if the tenant has a connected WhatsApp instance."""
        return bool(self.settings.get('enabled') and self.api_token and self.base_url)

    def _get_headers(self) -> Dict[str, str]:
        return {
            'Token': self.api_token,
            'Content-Type': 'application/json'
        }

    @staticmethod
    def clean_phone(phone: str) -> str:
        """Digits only, as WUZAPI expects."""
        return re.sub(r'\D', '', phone or '')

    def check_user(self, phone: str) -> Dict[str, Any]:
        """
        Check whether a number has WhatsApp.

        Returns:
            Dict with success, exists and the provider-formatted phone
        """
        clean = self.clean_phone(phone)
        try:
            response = requests.post(
                f'{self.base_url}/user/check',
                headers=self._get_headers(),
                json={'Phone': [clean]},
                timeout=10
            )

            if response.status_code != 200:
                return {'success': False, 'error': f'API error: {response.status_code}'}

            data = response.json()
            users = (data.get('data') or {}).get('Users') or []
            if not data.get('success') or not users:
                return {'success': False, 'error': 'Number not found in API response'}

            user = users[0]
            jid = user.get('JID')
            return {
                'success': True,
                'exists': user.get('IsInWhatsapp') is True,
                'phone': self.clean_phone(jid.split('@')[0]) if jid else clean,
            }

        except (requests.exceptions.RequestException, ValueError) as e:
            current_app.logger.warning(f"WhatsApp check_user failed: {e}")
            return {'success': False, 'error': str(e)}

    def send_text(self, phone: str, body: str) -> Dict[str, Any]:
        """
        Send a text message, verifying the number first.

        Args:
            phone: Client contact handle (any formatting)
            body: Message text

        Returns:
            Dict with success status; never raises
        """
        if not self.is_enabled():
            return {'success': False, 'error': 'WhatsApp not enabled'}

        check = self.check_user(phone)
        if not check['success']:
            return check
        if not check['exists']:
            current_app.logger.warning(f"WhatsApp: number {phone} has no WhatsApp account")
            return {'success': False, 'error': 'Number has no WhatsApp'}

        try:
            response = requests.post(
                f'{self.base_url}/chat/send/text',
                headers=self._get_headers(),
                json={'Phone': check['phone'], 'Body': body},
                timeout=10
            )

            if response.status_code in [200, 201]:
                return {'success': True}

            current_app.logger.warning(
                f"WhatsApp send failed for tenant {self.tenant_id}: {response.status_code}"
            )
            return {
                'success': False,
                'error': f'API error: {response.status_code}',
                'details': response.text
            }

        except requests.exceptions.RequestException as e:
            current_app.logger.warning(f"WhatsApp send_text failed: {e}")
            return {'success': False, 'error': str(e)}

    def send_template(self, template: str, phone: str, **context) -> Dict[str, Any]:
        """Render one of TEMPLATES and send it."""
        context.setdefault('shop_name', self.tenant.name if self.tenant else '')
        try:
            body = self.TEMPLATES[template].format(**context)
        except KeyError as e:
            current_app.logger.error(f"WhatsApp template '{template}' missing value: {e}")
            return {'success': False, 'error': f'Template error: {e}'}
        return self.send_text(phone, body)
