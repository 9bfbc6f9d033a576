"""
Blueprints package for vaultshare.
Organizes routes by functionality for better maintainability.
"""

from .auth import auth_bp
from .users import users_bp
from .devices import devices_bp
from .files import files_bp
from .download import download_bp
from .file_types import file_types_bp

__all__ = [
    'auth_bp',
    'users_bp',
    'devices_bp',
    'files_bp',
    'download_bp',
    'file_types_bp',
]
