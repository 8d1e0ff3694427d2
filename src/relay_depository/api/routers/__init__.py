"""Token-protected API routers."""
