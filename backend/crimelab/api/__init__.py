"""
HTTP routers
"""
from . import activity, admin, cases, checkout, webhooks

__all__ = ['activity', 'admin', 'cases', 'checkout', 'webhooks']
