"""
API module for device discovery and routine automation
"""

from .main_api import AutomationAPI
from .device_routes import create_device_routes
from .routine_routes import create_routine_routes
from .system_routes import create_system_routes

__all__ = ['AutomationAPI', 'create_device_routes', 'create_routine_routes', 'create_system_routes']
