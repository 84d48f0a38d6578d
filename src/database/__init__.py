"""
Database module for devices, routines and run logs
"""

from .manager import DatabaseManager
from .models import UserProfile, DeviceRecord, TaskRecord

__all__ = ['DatabaseManager', 'UserProfile', 'DeviceRecord', 'TaskRecord']
