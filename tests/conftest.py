"""
Shared pytest fixtures for BarberBook tests.

The app fixture runs on in-memory SQLite with an application context pushed
for the whole test, so fixtures and tests share one database session.
"""
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from app import create_app
from app.extensions import db
from app.utils.cache import cache


@pytest.fixture
def app():
    """Create application for testing."""
    app = create_app('testing')
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    cache.clear()

    yield app

    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def sample_tenant(app):
    """Barbershop with WhatsApp enabled and Mercado Pago payments."""
    from app.models import Tenant

    tenant = Tenant(
        name='Barbearia do Zé',
        slug='barbearia-do-ze',
        settings={
            'payments': {'provider': 'mercado_pago', 'access_token': 'TEST-tenant-token'},
            'integrations': {
                'whatsapp': {'enabled': True, 'api_token': 'wuz-token', 'instance_name': 'ze'},
            },
        },
        is_active=True,
    )
    db.session.add(tenant)
    db.session.commit()
    return tenant


@pytest.fixture
def other_tenant(app):
    """A second barbershop, for tenant isolation checks."""
    from app.models import Tenant

    tenant = Tenant(name='Outra Barbearia', slug='outra', settings={}, is_active=True)
    db.session.add(tenant)
    db.session.commit()
    return tenant


@pytest.fixture
def sample_professional(sample_tenant):
    from app.models import Professional

    professional = Professional(tenant_id=sample_tenant.id, name='João', is_active=True)
    db.session.add(professional)
    db.session.commit()
    return professional


@pytest.fixture
def sample_service(sample_tenant):
    from app.models import Service

    service = Service(
        tenant_id=sample_tenant.id,
        name='Corte',
        price=Decimal('50.00'),
        duration_minutes=30,
        is_active=True,
    )
    db.session.add(service)
    db.session.commit()
    return service


@pytest.fixture
def sample_client(sample_tenant):
    from app.models import Client

    client = Client(tenant_id=sample_tenant.id, name='Carlos', phone='5511999990000')
    db.session.add(client)
    db.session.commit()
    return client


@pytest.fixture
def loyalty_config(sample_tenant):
    """Per-visit program: 10 points per completed appointment."""
    from app.models import LoyaltyConfig

    config = LoyaltyConfig(
        tenant_id=sample_tenant.id,
        enabled=True,
        points_type='visit',
        points_per_visit=10,
        points_per_currency_unit=Decimal('0'),
        min_amount_for_points=Decimal('0'),
    )
    db.session.add(config)
    db.session.commit()
    cache.clear()
    return config


@pytest.fixture
def sample_reward(sample_tenant):
    from app.models import LoyaltyReward

    reward = LoyaltyReward(
        tenant_id=sample_tenant.id,
        name='Corte grátis',
        points_required=100,
        reward_type='service',
        reward_value=Decimal('50.00'),
        active=True,
    )
    db.session.add(reward)
    db.session.commit()
    return reward


@pytest.fixture
def mock_messenger():
    """Messaging gateway that always succeeds."""
    messenger = MagicMock()
    messenger.send_template.return_value = {'success': True}
    messenger.send_text.return_value = {'success': True}
    return messenger


@pytest.fixture
def booking_now():
    """Fixed clock for booking tests."""
    return datetime(2024, 1, 15, 9, 0, 0)


@pytest.fixture
def tenant_headers(sample_tenant):
    return {'X-Tenant-Slug': sample_tenant.slug}
