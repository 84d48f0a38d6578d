"""
Unit tests for DatabaseManager row mapping against a mocked asyncpg pool.
"""
import json
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from database.manager import DatabaseManager
from discovery.models import DiscoveredDevice, DeviceType, ConnectionType
from routines.models import ActionType, RunStatus, StepStatus, TriggerType
from routines.payloads import RoutineDefinition


@pytest.fixture
def conn():
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.executemany = AsyncMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=1)
    return conn


@pytest.fixture
def db(config, conn):
    manager = DatabaseManager(config)
    manager.pool = MagicMock()
    manager.pool.acquire.return_value.__aenter__.return_value = conn
    return manager


# ---------------------------------------------------------------------------
# Routines
# ---------------------------------------------------------------------------

class TestRoutines:

    @pytest.mark.asyncio
    async def test_create_routine_numbers_steps(self, db, conn):
        definition = RoutineDefinition.model_validate({
            "name": "Matin",
            "steps": [
                {"action_type": "NOTIFICATION", "payload": {"message": "Trafic"}},
                {"action_type": "TASK_CREATE", "payload": {"title": "Courses"}, "delay_seconds": 10},
            ],
        })

        routine = await db.create_routine("user-1", definition)

        assert [s.order for s in routine.steps] == [0, 1]
        assert routine.steps[0].action_type is ActionType.NOTIFICATION
        assert routine.steps[0].payload == {"message": "Trafic"}
        rows = conn.executemany.await_args.args[1]
        assert [row[2] for row in rows] == [0, 1]
        assert [row[3] for row in rows] == ["NOTIFICATION", "TASK_CREATE"]
        assert json.loads(rows[1][4]) == {"title": "Courses"}
        assert rows[1][6] == 10

    @pytest.mark.asyncio
    async def test_get_routine_requires_owner(self, db, conn):
        assert await db.get_routine("routine-1", "someone-else") is None
        assert conn.fetchrow.await_args.args[1:] == ("routine-1", "someone-else")
        conn.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_routine_maps_rows(self, db, conn):
        conn.fetchrow.return_value = {
            "id": "routine-1", "user_id": "user-1", "name": "Matin", "description": None,
            "trigger_type": "SCHEDULE", "trigger_data": '{"cron": "0 7 * * *"}', "active": True,
        }
        conn.fetch.return_value = [
            {"id": "s0", "step_order": 0, "action_type": "NOTIFICATION",
             "payload": '{"message": "Bonjour"}', "device_id": None, "delay_seconds": None},
            {"id": "s1", "step_order": 1, "action_type": "LEGACY_ACTION",
             "payload": None, "device_id": None, "delay_seconds": None},
        ]

        routine = await db.get_routine("routine-1", "user-1")

        assert routine.trigger_type == TriggerType.SCHEDULE
        assert routine.trigger_data == {"cron": "0 7 * * *"}
        assert routine.steps[0].payload == {"message": "Bonjour"}
        assert routine.steps[1].action_type == "LEGACY_ACTION"
        assert routine.steps[1].payload == {}

    @pytest.mark.asyncio
    async def test_create_routine_log(self, db, conn):
        details = {
            "results": [{"stepId": "s0", "order": 0, "actionType": "NOTIFICATION", "status": "success"}],
            "metadata": None,
        }
        created = datetime(2026, 1, 5, 7, 30, tzinfo=timezone.utc)
        conn.fetchrow.return_value = {
            "id": "log-1", "routine_id": "routine-1", "status": "success",
            "details": json.dumps(details), "created_at": created,
        }

        log = await db.create_routine_log("routine-1", RunStatus.SUCCESS, details)

        assert conn.fetchrow.await_args.args[3] == "success"
        assert json.loads(conn.fetchrow.await_args.args[4]) == details
        assert log.results[0].status == StepStatus.SUCCESS
        assert log.to_dict()["createdAt"] == "2026-01-05T07:30:00+00:00"

    @pytest.mark.asyncio
    async def test_get_routine_logs(self, db, conn):
        conn.fetch.return_value = [{
            "id": "log-2", "routine_id": "routine-1", "status": "failed",
            "details": {"results": [], "metadata": {"source": "voice"}}, "created_at": None,
        }]

        logs = await db.get_routine_logs("routine-1", 5)

        assert logs[0].status == RunStatus.FAILED
        assert logs[0].metadata == {"source": "voice"}
        assert conn.fetch.await_args.args[1:] == ("routine-1", 5)


# ---------------------------------------------------------------------------
# Devices, profiles and tasks
# ---------------------------------------------------------------------------

class TestDevicesAndTasks:

    @pytest.mark.asyncio
    async def test_save_device(self, db, conn):
        device = DiscoveredDevice(
            id="hue-1", name="Salon", type=DeviceType.LIGHT, connection_type=ConnectionType.WIFI,
            provider="hue", metadata={"bridgeIp": "192.168.1.2"},
        )

        assert await db.save_device("user-1", device) is True
        args = conn.execute.await_args.args
        assert args[1:6] == ("hue-1", "user-1", "Salon", "hue", "LIGHT")
        assert json.loads(args[6]) == {"bridgeIp": "192.168.1.2"}

    @pytest.mark.asyncio
    async def test_save_device_failure_returns_false(self, db, conn):
        conn.execute.side_effect = RuntimeError("connection lost")
        device = DiscoveredDevice(id="x", name="x", type=DeviceType.OTHER,
                                  connection_type=ConnectionType.WIFI, provider="generic")

        assert await db.save_device("user-1", device) is False

    @pytest.mark.asyncio
    async def test_update_last_seen(self, db, conn):
        assert await db.update_device_last_seen("hue-1") is True
        conn.execute.return_value = "UPDATE 0"
        assert await db.update_device_last_seen("ghost") is False

    @pytest.mark.asyncio
    async def test_get_device_decodes_metadata(self, db, conn):
        conn.fetchrow.return_value = {
            "device_id": "hue-1", "user_id": "user-1", "name": "Salon", "provider": "hue",
            "device_type": "LIGHT", "metadata": '{"hueId": "4"}', "last_seen_at": None,
        }

        device = await db.get_device("hue-1")

        assert device.metadata == {"hueId": "4"}

    @pytest.mark.asyncio
    async def test_user_profile(self, db, conn):
        conn.fetchrow.return_value = {
            "user_id": "user-1", "work_address": "Bureau", "work_lat": 48.8, "work_lng": 2.3,
            "home_address": None, "home_lat": None, "home_lng": None,
        }

        profile = await db.get_user_profile("user-1")

        assert profile.has_work_location is True

    @pytest.mark.asyncio
    async def test_create_task(self, db, conn):
        conn.fetchrow.return_value = {
            "id": "task-1", "user_id": "user-1", "title": "Courses", "completed": False, "created_at": None,
        }

        task = await db.create_task("user-1", "Courses")

        assert task == {"id": "task-1", "userId": "user-1", "title": "Courses",
                        "completed": False, "createdAt": None}

    @pytest.mark.asyncio
    async def test_health_check(self, db, conn):
        assert await db.health_check() is True
        conn.fetchval.side_effect = RuntimeError("down")
        assert await db.health_check() is False
