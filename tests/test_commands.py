"""
Tests for the scheduled CLI commands.
"""
from datetime import datetime, timedelta

import pytest

from app.extensions import db
from app.models import Appointment, LoyaltyBalance


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def stale_reservation(sample_tenant, sample_professional, sample_service):
    now = datetime.utcnow()
    appointment = Appointment(
        tenant_id=sample_tenant.id,
        professional_id=sample_professional.id,
        service_id=sample_service.id,
        scheduled_at=now + timedelta(hours=3),
        client_name='Carlos',
        client_phone='5511999990000',
        status='pending_payment',
        payment_method='online',
        service_price=sample_service.price,
        prepaid_amount=sample_service.price / 2,
        confirmation_code='0427',
        tolerance_expires_at=now + timedelta(hours=3, minutes=10),
        payment_expires_at=now - timedelta(minutes=1),
    )
    db.session.add(appointment)
    db.session.commit()
    return appointment


class TestExpireReservationsCommand:

    def test_dry_run(self, runner, stale_reservation):
        result = runner.invoke(args=['scheduled', 'expire-reservations', '--dry-run'])

        assert result.exit_code == 0
        assert '[DRY RUN] TOTAL: 1' in result.output
        assert Appointment.query.get(stale_reservation.id).status == 'pending_payment'

    def test_expires(self, runner, sample_tenant, stale_reservation):
        sample_tenant.settings = {}
        db.session.commit()

        result = runner.invoke(args=['scheduled', 'expire-reservations', '--tenant-id', str(sample_tenant.id)])

        assert result.exit_code == 0
        assert 'TOTAL: 1' in result.output
        assert Appointment.query.get(stale_reservation.id).status == 'cancelled'

    def test_unknown_tenant(self, runner, app):
        result = runner.invoke(args=['scheduled', 'expire-reservations', '--tenant-id', '999'])

        assert 'Tenant 999 not found' in result.output


class TestAuditBalancesCommand:

    def test_reports_inconsistent_rows(self, runner, sample_tenant):
        db.session.add(LoyaltyBalance(
            tenant_id=sample_tenant.id,
            contact_handle='5511999990000',
            points=30,
            total_earned=20,
            total_redeemed=0,
        ))
        db.session.commit()

        result = runner.invoke(args=['loyalty', 'audit-balances'])

        assert result.exit_code == 0
        assert '5511999990000 points=30 earned=20' in result.output
        assert '1 inconsistent balance(s)' in result.output
