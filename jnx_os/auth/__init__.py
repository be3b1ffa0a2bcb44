"""Session authentication, page gating and RBAC."""
