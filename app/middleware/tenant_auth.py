"""
Tenant resolution middleware.

Every API call is scoped to one barbershop. The tenant is taken from the
request and placed on flask.g for the blueprint handlers.
"""
from functools import wraps
from typing import Optional

from flask import request, g

from ..models import Tenant
from ..utils.errors import ErrorCode, forbidden, not_found, unauthorized


def get_tenant_from_request() -> Optional[Tenant]:
    """
    Resolve the tenant of the current request.

    Priority:
    1. X-Tenant-Slug header
    2. tenant query parameter (slug)
    3. X-Tenant-ID header

    Returns:
        Tenant or None when no identifier was sent or it matches nothing
    """
    slug = request.headers.get('X-Tenant-Slug') or request.args.get('tenant')
    if slug:
        return Tenant.query.filter_by(slug=slug.strip().lower()).first()

    tenant_id = request.headers.get('X-Tenant-ID')
    if tenant_id:
        try:
            return Tenant.query.get(int(tenant_id))
        except (ValueError, TypeError):
            return None

    return None


def has_tenant_identifier() -> bool:
    return bool(
        request.headers.get('X-Tenant-Slug')
        or request.args.get('tenant')
        or request.headers.get('X-Tenant-ID')
    )


def require_tenant(f):
    """
    Decorator requiring a known, active tenant.

    Sets g.tenant_id and g.tenant.

    Usage:
        @require_tenant
        def my_endpoint():
            tenant_id = g.tenant_id
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not has_tenant_identifier():
            return unauthorized('Missing barbershop identifier')

        tenant = get_tenant_from_request()
        if not tenant:
            return not_found('Barbershop not found', ErrorCode.TENANT_NOT_FOUND)

        if not tenant.is_active:
            return forbidden("This barbershop's access has been disabled")

        g.tenant_id = tenant.id
        g.tenant = tenant

        return f(*args, **kwargs)

    return decorated_function
