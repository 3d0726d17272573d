"""
Service-level tests
"""
