"""HTTP adapter: FastAPI routers and schemas for the audit log."""
