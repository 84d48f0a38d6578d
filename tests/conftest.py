"""
Pytest configuration and shared fixtures for the automation server tests.
"""
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from unittest.mock import AsyncMock, MagicMock

from config_loader import get_sample_config, _apply_defaults
from database.models import UserProfile
from routines.models import Routine, RoutineStep, RoutineLog, ActionType
from routines.transport import DeviceCommandResponse


@pytest.fixture
def config():
    """Complete configuration as load_config would return it."""
    return _apply_defaults(get_sample_config())


@pytest.fixture
def network_config(config):
    """Network section with a small, fast scan."""
    section = dict(config["network"])
    section.update({
        "scan_ranges": ["192.168.50.0/24"],
        "hosts_per_range": 4,
        "max_scan_hosts": 4,
        "scan_ports": [80, 8080],
        "service_types": ["_hap._tcp"],
    })
    return section


@pytest.fixture
def work_profile():
    return UserProfile(
        user_id="user-1",
        work_address="10 Rue de Rivoli, Paris",
        work_lat=48.8556,
        work_lng=2.3597,
    )


@pytest.fixture
def stores(work_profile):
    """One mock standing in for the routine, task, profile and device stores."""
    store = MagicMock()
    store.get_user_profile = AsyncMock(return_value=work_profile)
    store.create_task = AsyncMock(side_effect=lambda user_id, title: {
        "id": "task-1", "userId": user_id, "title": title, "completed": False
    })
    store.get_routine = AsyncMock(return_value=None)

    async def create_routine_log(routine_id, status, details):
        return RoutineLog.from_details("log-1", routine_id, status.value, details)

    store.create_routine_log = AsyncMock(side_effect=create_routine_log)
    return store


@pytest.fixture
def transport():
    mock = MagicMock()
    mock.dispatch_device_command = AsyncMock(return_value=DeviceCommandResponse(
        device_id="dev-1", provider="philips-hue", action="turn_on",
        payload={}, status="queued", detail="Connector philips-hue not implemented"
    ))
    return mock


@pytest.fixture
def traffic_service():
    service = MagicMock()
    service.get_route = AsyncMock(return_value={
        "origin": "48.85,2.35",
        "routes": [{"summary": "A86", "duration": "25 min"}],
        "lastUpdate": "2026-01-05T07:30:00+00:00",
    })
    return service


@pytest.fixture
def news_service():
    service = MagicMock()
    service.search = AsyncMock(return_value={
        "articles": [{"title": "Croissance au T3"}],
        "totalResults": 1,
        "sources": ["lemonde"],
    })
    return service


def make_step(order, action_type, payload=None, device_id=None, delay_seconds=None):
    return RoutineStep(
        id=f"step-{order}",
        order=order,
        action_type=action_type,
        payload=payload or {},
        device_id=device_id,
        delay_seconds=delay_seconds,
    )


def make_routine(*steps, routine_id="routine-1", user_id="user-1"):
    return Routine(id=routine_id, user_id=user_id, name="Morning", steps=list(steps))


@pytest.fixture
def step_factory():
    return make_step


@pytest.fixture
def routine_factory():
    return make_routine


@pytest.fixture
def morning_routine():
    """Traffic reminder followed by a to-do."""
    return make_routine(
        make_step(0, ActionType.NOTIFICATION, {"message": "Rappel trafic vers le travail"}),
        make_step(1, ActionType.TASK_CREATE, {"title": "Préparer petit-déjeuner"}),
    )


@pytest_asyncio.fixture
async def web_ui_server():
    """Starts local aiohttp apps standing in for a device's web UI; returns the server."""
    servers = []

    async def start(routes):
        app = web.Application()
        for path, handler in routes.items():
            app.router.add_get(path, handler)
        server = TestServer(app, host="127.0.0.1")
        await server.start_server()
        servers.append(server)
        return server

    yield start

    for server in servers:
        await server.close()
