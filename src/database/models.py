"""
Database models and data structures
"""

from typing import Dict, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class UserProfile:
    """Saved addresses used to enrich notifications"""
    user_id: str
    work_address: Optional[str] = None
    work_lat: Optional[float] = None
    work_lng: Optional[float] = None
    home_address: Optional[str] = None
    home_lat: Optional[float] = None
    home_lng: Optional[float] = None

    @property
    def has_work_location(self) -> bool:
        return self.work_lat is not None and self.work_lng is not None


@dataclass
class DeviceRecord:
    """Database record for a device the user has connected"""
    device_id: str
    user_id: str
    name: str
    provider: str
    device_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_seen_at: Optional[datetime] = None


@dataclass
class TaskRecord:
    """Database record for a to-do item"""
    id: str
    user_id: str
    title: str
    completed: bool = False
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "completed": self.completed,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
