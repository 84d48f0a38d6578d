"""
Database manager for PostgreSQL operations
"""

import uuid
import asyncpg
import logging
from typing import List, Dict, Optional, Any
from datetime import datetime, timezone
import json

from .models import UserProfile, DeviceRecord, TaskRecord
from discovery.models import DiscoveredDevice
from routines.models import Routine, RoutineStep, RoutineLog, RunStatus, TriggerType, parse_action_type
from routines.payloads import RoutineDefinition

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _load_json(value, default):
    if value is None:
        return default
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)


class DatabaseManager:
    """
    Manages PostgreSQL operations for devices, routines and run logs.
    Also serves as the task store and user-profile store for routine steps.
    """

    def __init__(self, config: Dict):
        self.config = config
        self.pool = None
        self.db_host = config['database']['host']
        self.db_port = config['database']['port']
        self.db_name = config['database']['database']
        self.db_user = config['database']['username']
        self.db_password = config['database']['password']

    async def initialize(self):
        """Initialize database connection pool and schema"""
        try:
            self.pool = await asyncpg.create_pool(
                host=self.db_host,
                port=self.db_port,
                database=self.db_name,
                user=self.db_user,
                password=self.db_password,
                min_size=2,
                max_size=10,
                command_timeout=10
            )

            logger.info("Database connection pool created")

            await self.create_schema()
            logger.info("Database schema initialized")

        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    async def create_schema(self):
        """Create database tables if they don't exist"""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS user_profiles (
            user_id TEXT PRIMARY KEY,
            work_address TEXT,
            work_lat DOUBLE PRECISION,
            work_lng DOUBLE PRECISION,
            home_address TEXT,
            home_lat DOUBLE PRECISION,
            home_lng DOUBLE PRECISION,
            updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS devices (
            device_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            provider TEXT NOT NULL,
            device_type TEXT NOT NULL,
            metadata JSONB,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            last_seen_at TIMESTAMPTZ
        );

        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            completed BOOLEAN DEFAULT false,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS routines (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            trigger_type TEXT NOT NULL,
            trigger_data JSONB,
            active BOOLEAN DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS routine_steps (
            id TEXT PRIMARY KEY,
            routine_id TEXT NOT NULL REFERENCES routines(id) ON DELETE CASCADE,
            step_order INTEGER NOT NULL,
            action_type TEXT NOT NULL,
            payload JSONB,
            device_id TEXT,
            delay_seconds INTEGER,
            UNIQUE (routine_id, step_order)
        );

        CREATE TABLE IF NOT EXISTS routine_logs (
            id TEXT PRIMARY KEY,
            routine_id TEXT NOT NULL REFERENCES routines(id) ON DELETE CASCADE,
            status TEXT NOT NULL,
            details JSONB NOT NULL,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_devices_user ON devices(user_id);
        CREATE INDEX IF NOT EXISTS idx_routines_user ON routines(user_id);
        CREATE INDEX IF NOT EXISTS idx_routine_logs_routine_ts
        ON routine_logs(routine_id, created_at DESC);
        """

        async with self.pool.acquire() as conn:
            await conn.execute(schema_sql)

    async def close(self):
        """Close database connection pool"""
        if self.pool:
            await self.pool.close()
            logger.info("Database connection pool closed")

    # === DEVICES ===

    async def save_device(self, user_id: str, device: DiscoveredDevice) -> bool:
        """Insert or update a connected device so routines can address it"""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO devices (
                        device_id, user_id, name, provider, device_type, metadata, last_seen_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                    ON CONFLICT (device_id) DO UPDATE SET
                        user_id = $2,
                        name = $3,
                        provider = $4,
                        device_type = $5,
                        metadata = COALESCE(devices.metadata, '{}'::jsonb) || $6::jsonb,
                        last_seen_at = $7
                """,
                device.id, user_id, device.name, device.provider, device.type.value,
                json.dumps(device.metadata), datetime.now(timezone.utc)
                )
            return True
        except Exception as e:
            logger.error(f"Failed to save device {device.id}: {e}")
            return False

    async def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT device_id, user_id, name, provider, device_type, metadata, last_seen_at
                FROM devices
                WHERE device_id = $1
            """, device_id)

        if not row:
            return None
        return DeviceRecord(
            device_id=row['device_id'],
            user_id=row['user_id'],
            name=row['name'],
            provider=row['provider'],
            device_type=row['device_type'],
            metadata=_load_json(row['metadata'], {}),
            last_seen_at=row['last_seen_at']
        )

    async def update_device_last_seen(self, device_id: str) -> bool:
        """Update last_seen_at after a successful command"""
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute("""
                    UPDATE devices SET last_seen_at = $1 WHERE device_id = $2
                """, datetime.now(timezone.utc), device_id)

            rows_affected = int(result.split()[-1]) if result and result.split() else 0
            return rows_affected > 0
        except Exception as e:
            logger.error(f"Failed to update last_seen_at for {device_id}: {e}")
            return False

    # === USERS & TASKS ===

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT user_id, work_address, work_lat, work_lng,
                       home_address, home_lat, home_lng
                FROM user_profiles
                WHERE user_id = $1
            """, user_id)

        return UserProfile(**dict(row)) if row else None

    async def create_task(self, user_id: str, title: str) -> Dict[str, Any]:
        """Create a to-do item; errors propagate to the calling step"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO tasks (id, user_id, title)
                VALUES ($1, $2, $3)
                RETURNING id, user_id, title, completed, created_at
            """, _new_id(), user_id, title)

        return TaskRecord(
            id=row['id'],
            user_id=row['user_id'],
            title=row['title'],
            completed=row['completed'],
            created_at=row['created_at']
        ).to_dict()

    # === ROUTINES ===

    async def create_routine(self, user_id: str, definition: RoutineDefinition) -> Routine:
        """Save a validated routine definition with its steps in one transaction"""
        routine = Routine(
            id=_new_id(),
            user_id=user_id,
            name=definition.name,
            description=definition.description,
            trigger_type=definition.trigger_type,
            trigger_data=definition.trigger_data,
            active=definition.active,
            steps=[RoutineStep(
                id=_new_id(),
                order=index,
                action_type=parse_action_type(step.action_type),
                payload=step.payload.model_dump(exclude_none=True),
                device_id=step.device_id,
                delay_seconds=step.delay_seconds
            ) for index, step in enumerate(definition.steps)]
        )

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("""
                    INSERT INTO routines (id, user_id, name, description, trigger_type, trigger_data, active)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                routine.id, user_id, routine.name, routine.description,
                routine.trigger_type.value, json.dumps(routine.trigger_data), routine.active
                )

                await conn.executemany("""
                    INSERT INTO routine_steps (id, routine_id, step_order, action_type, payload, device_id, delay_seconds)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                """, [(
                    step.id, routine.id, step.order, step.action_type.value,
                    json.dumps(step.payload), step.device_id, step.delay_seconds
                ) for step in routine.steps])

        logger.info(f"[OK] Saved routine '{routine.name}' ({routine.id}) with {len(routine.steps)} steps")
        return routine

    async def get_routine(self, routine_id: str, user_id: Optional[str]) -> Optional[Routine]:
        """Load a routine owned by user_id with its steps ordered by position"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT id, user_id, name, description, trigger_type, trigger_data, active
                FROM routines
                WHERE id = $1 AND user_id = $2
            """, routine_id, user_id)

            if not row:
                return None

            step_rows = await conn.fetch("""
                SELECT id, step_order, action_type, payload, device_id, delay_seconds
                FROM routine_steps
                WHERE routine_id = $1
                ORDER BY step_order ASC
            """, routine_id)

        return Routine(
            id=row['id'],
            user_id=row['user_id'],
            name=row['name'],
            description=row['description'],
            trigger_type=TriggerType(row['trigger_type']),
            trigger_data=_load_json(row['trigger_data'], {}),
            active=row['active'],
            steps=[RoutineStep(
                id=s['id'],
                order=s['step_order'],
                action_type=parse_action_type(s['action_type']),
                payload=_load_json(s['payload'], {}),
                device_id=s['device_id'],
                delay_seconds=s['delay_seconds']
            ) for s in step_rows]
        )

    async def create_routine_log(self, routine_id: str, status: RunStatus,
                                 details: Dict[str, Any]) -> RoutineLog:
        """Persist one run log; errors propagate to the engine"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO routine_logs (id, routine_id, status, details)
                VALUES ($1, $2, $3, $4)
                RETURNING id, routine_id, status, details, created_at
            """, _new_id(), routine_id, status.value, json.dumps(details))

        return RoutineLog.from_details(
            row['id'], row['routine_id'], row['status'],
            _load_json(row['details'], {}), row['created_at']
        )

    async def get_routine_logs(self, routine_id: str, limit: int = 20) -> List[RoutineLog]:
        """Most recent run logs first"""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT id, routine_id, status, details, created_at
                FROM routine_logs
                WHERE routine_id = $1
                ORDER BY created_at DESC
                LIMIT $2
            """, routine_id, limit)

        return [RoutineLog.from_details(
            row['id'], row['routine_id'], row['status'],
            _load_json(row['details'], {}), row['created_at']
        ) for row in rows]

    async def health_check(self) -> bool:
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
