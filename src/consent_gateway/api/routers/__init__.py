"""
consent_gateway.api.routers

Route modules: sites (register/verify), admin, health.
"""
