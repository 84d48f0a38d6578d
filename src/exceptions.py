"""
Exception hierarchy for the home automation server
"""

from typing import Optional


class AutomationError(Exception):
    """Base class for all automation server errors"""


class ConfigurationError(AutomationError):
    """Invalid or incomplete configuration"""


# ================== DISCOVERY ==================

class DiscoveryError(AutomationError):
    """Base class for discovery errors that are surfaced to the caller"""


class GestureRequiredError(DiscoveryError):
    """Bluetooth request made without a fresh user gesture"""


class BluetoothPlatformError(DiscoveryError):
    """Bluetooth adapter unavailable, disabled or refused by the platform"""


# ================== DEVICES ==================

class DeviceCommandError(AutomationError):
    """Device transport could not deliver a command"""

    def __init__(self, message: str, device_id: Optional[str] = None):
        super().__init__(message)
        self.device_id = device_id


class CollaboratorError(AutomationError):
    """External platform service (traffic, news) returned an unusable answer"""

    def __init__(self, service: str, message: str, status: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status = status


# ================== ROUTINES ==================

class RoutineError(AutomationError):
    """Base class for routine errors that reach the execute_routine caller"""


class RoutineNotFoundError(RoutineError):
    """Routine does not exist or is not owned by the requesting user"""

    def __init__(self, routine_id: str):
        super().__init__(f"Routine not found: {routine_id}")
        self.routine_id = routine_id


class PersistenceError(RoutineError):
    """Writing or reading routine state failed"""
