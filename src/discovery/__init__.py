"""
Discovery module for smart-home device discovery
"""

from .manager import DeviceDiscovery
from .models import DiscoveredDevice, DeviceType, ConnectionType, DeviceFilter, ConnectionResult
from .network_discovery import NetworkProbe
from .bluetooth import BluetoothProbe, UserGesture
from .registry import DeviceRegistry
from .connector import DeviceConnector

__all__ = ['DeviceDiscovery', 'DiscoveredDevice', 'DeviceType', 'ConnectionType', 'DeviceFilter',
           'ConnectionResult', 'NetworkProbe', 'BluetoothProbe', 'UserGesture', 'DeviceRegistry',
           'DeviceConnector']
