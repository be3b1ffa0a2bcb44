# API routes
from jnx_os.api.routes import admin
from jnx_os.api.routes import auth
from jnx_os.api.routes import dashboard
from jnx_os.api.routes import health
from jnx_os.api.routes import users
from jnx_os.api.routes import webhooks_clerk

__all__ = ["admin", "auth", "dashboard", "health", "users", "webhooks_clerk"]
