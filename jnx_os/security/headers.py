"""
Security headers middleware.

Adds clickjacking, MIME-sniffing, referrer, permissions, HSTS and CSP
headers to every response. The CSP allows the Clerk frontend API and
Cloudflare Turnstile, which the hosted sign-in widgets load from.
"""

import logging
from typing import Callable, Dict, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class SecurityHeadersConfig:
    """Header values; CSP sources can be extended per deployment."""

    def __init__(self, clerk_origins: Optional[List[str]] = None):
        self.clerk_origins = clerk_origins or ["https://*.clerk.accounts.dev"]

        self.default_src = "'self'"
        self.script_src = " ".join(
            ["'self'", "'unsafe-inline'", *self.clerk_origins, "https://challenges.cloudflare.com"]
        )
        self.style_src = "'self' 'unsafe-inline' https://fonts.googleapis.com"
        self.font_src = "'self' https://fonts.gstatic.com"
        self.img_src = "'self' data: https: blob:"
        self.connect_src = " ".join(["'self'", *self.clerk_origins])
        self.frame_src = " ".join(["'self'", *self.clerk_origins, "https://challenges.cloudflare.com"])
        self.base_uri = "'self'"
        self.form_action = "'self'"

    def build_csp_header(self) -> str:
        """Build the complete CSP header value."""
        directives = [
            f"default-src {self.default_src}",
            f"script-src {self.script_src}",
            f"style-src {self.style_src}",
            f"font-src {self.font_src}",
            f"img-src {self.img_src}",
            f"connect-src {self.connect_src}",
            f"frame-src {self.frame_src}",
            f"base-uri {self.base_uri}",
            f"form-action {self.form_action}",
        ]
        return "; ".join(directives)

    def headers(self) -> Dict[str, str]:
        return {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "X-XSS-Protection": "1; mode=block",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
            "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
            "Content-Security-Policy": self.build_csp_header(),
        }


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Apply SecurityHeadersConfig headers to all responses."""

    def __init__(self, app, config: Optional[SecurityHeadersConfig] = None):
        super().__init__(app)
        self.config = config or SecurityHeadersConfig()
        self._headers = self.config.headers()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self._headers.items():
            response.headers[name] = value
        return response
