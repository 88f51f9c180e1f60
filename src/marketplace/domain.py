"""Marketplace bounded context: client-side checkout and order lifecycle.

Groups a shopping cart by vendor, prices each vendor group, resolves discount
offers, splits one checkout into per-vendor orders and keeps local order views
in step with the server through the push channel.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
