"""vaultshare: encrypted file drop with device-trusted uploads and expiring share links."""

__version__ = '0.1.0'

from .app_factory import create_app

__all__ = ['create_app', '__version__']
