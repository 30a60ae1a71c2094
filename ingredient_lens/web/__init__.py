"""
Web 模块 - JSON API
"""

from .app import create_app, init_services, main, request_is_secure

__all__ = [
    'create_app',
    'init_services',
    'main',
    'request_is_secure',
]
