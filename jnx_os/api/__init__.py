"""HTTP layer: shared dependencies and routers."""
