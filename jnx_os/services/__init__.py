"""
Identity services.
"""

from jnx_os.services.clerk_webhook_handler import ClerkWebhookHandler
from jnx_os.services.fallback_sync import FallbackSyncService
from jnx_os.services.health_service import HealthService
from jnx_os.services.identity_store import IdentityStore

__all__ = ["ClerkWebhookHandler", "FallbackSyncService", "HealthService", "IdentityStore"]
