"""
Middleware package for BarberBook.
"""
from .tenant_auth import require_tenant, get_tenant_from_request

__all__ = ['require_tenant', 'get_tenant_from_request']
