"""
ASGI entry point for JNX-OS.

    uvicorn main:app
"""

import os

from jnx_os.app import create_app
from jnx_os.config.settings import get_settings
from jnx_os.observability.logging import configure_logging

settings = get_settings()
configure_logging(settings)

app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.env == "development",
    )
