"""
Configuration loader for the Home Automation Local Server
Loads and validates configuration from YAML files
"""

import yaml
import logging
import copy
from typing import Dict, Any
from pathlib import Path
from datetime import datetime
import pytz

from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SCAN_PORTS = [80, 8080, 8081, 8888, 5000, 3000, 8000]

DEFAULT_SERVICE_TYPES = [
    "_http._tcp",
    "_hap._tcp",
    "_homekit._tcp",
    "_googlecast._tcp",
    "_airplay._tcp",
    "_sonos._tcp",
    "_tuya._tcp",
    "_wled._tcp",
]

SECTION_DEFAULTS = {
    'network': {
        'discovery_timeout_ms': 10000,
        'listener_timeout_ms': 5000,
        'probe_timeout_ms': 800,
        'max_concurrent_probes': 20,
        'scan_ranges': ['192.168.1.0/24', '192.168.0.0/24', '10.0.0.0/24'],
        'hosts_per_range': 25,
        'max_scan_hosts': 100,
        'scan_ports': DEFAULT_SCAN_PORTS,
        'service_types': DEFAULT_SERVICE_TYPES,
        'dedupe_by_endpoint': True,
    },
    'bluetooth': {
        'scan_timeout_seconds': 5.0,
        'gesture_ttl_seconds': 5.0,
        'optional_services': [
            'battery_service',
            'device_information',
            'environmental_sensing',
            'generic_access',
            'heart_rate',
            'human_interface_device',
        ],
    },
    'devices': {
        'connect_timeout_ms': 1500,
        'credential_requirements': {
            'tuya': ['apiKey'],
            'ewelink': ['accessToken'],
        },
    },
    'routines': {
        'enforce_delays': False,
        'max_delay_seconds': 300,
    },
    'services': {
        'base_url': 'http://localhost:3000',
        'traffic_path': '/api/traffic',
        'news_path': '/api/news/search',
        'timeout_seconds': 10,
    },
    'api': {
        'host': '0.0.0.0',
        'port': 8000,
    },
    'monitoring': {
        'health_check_interval_minutes': 15,
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/automation_server.log',
        'console_output': True,
        'timezone': 'Europe/Paris',
    },
}


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        _validate_config(config)
        config = _apply_defaults(config)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise


def _validate_config(config: Dict) -> None:
    """Validate that required configuration sections exist"""
    if 'database' not in config:
        raise ConfigurationError("Missing required configuration section: database")

    db = config['database']
    required_db_fields = ['host', 'port', 'database', 'username', 'password']
    for field in required_db_fields:
        if field not in db:
            raise ConfigurationError(f"Missing required database field: {field}")

    network = config.get('network') or {}
    if 'scan_ranges' in network and not network['scan_ranges']:
        raise ConfigurationError("network.scan_ranges must not be empty when provided")

    probe_timeout = network.get('probe_timeout_ms')
    if probe_timeout is not None and probe_timeout > 800:
        logger.warning(f"network.probe_timeout_ms={probe_timeout} exceeds 800ms - scans may overrun their deadline")

    if 'services' in config:
        base_url = config['services'].get('base_url', '')
        if base_url and not base_url.startswith(('http://', 'https://')):
            raise ConfigurationError(f"services.base_url must be an http(s) URL: {base_url}")


def _apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""
    for section, defaults in SECTION_DEFAULTS.items():
        if not config.get(section):
            config[section] = {}
        for key, default_value in defaults.items():
            if key not in config[section]:
                config[section][key] = copy.deepcopy(default_value)
    return config


class SiteTimezoneFormatter(logging.Formatter):
    """Formatter that renders timestamps in the site's local timezone"""

    def __init__(self, fmt=None, timezone_name: str = 'Europe/Paris'):
        super().__init__(fmt)
        self.site_tz = pytz.timezone(timezone_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.site_tz)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime('%Y-%m-%d %H:%M:%S %Z')


def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration with site-local timestamps"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')
    timezone_name = log_config.get('timezone', 'Europe/Paris')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = SiteTimezoneFormatter(log_format, timezone_name)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=[]
    )

    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logging.getLogger().addHandler(console_handler)

    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logging.getLogger().addHandler(file_handler)

    logger.info(f"Logging configured ({timezone_name}): level={level}, console={log_config.get('console_output', True)}, file={log_file}")


def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    return {
        "network": {
            "discovery_timeout_ms": 10000,
            "listener_timeout_ms": 5000,
            "probe_timeout_ms": 800,
            "max_concurrent_probes": 20,
            "scan_ranges": ["192.168.1.0/24", "192.168.0.0/24", "10.0.0.0/24"],
            "hosts_per_range": 25,
            "max_scan_hosts": 100,
            "scan_ports": DEFAULT_SCAN_PORTS,
            "dedupe_by_endpoint": True
        },
        "bluetooth": {
            "scan_timeout_seconds": 5.0,
            "gesture_ttl_seconds": 5.0
        },
        "devices": {
            "credential_requirements": {
                "tuya": ["apiKey"],
                "ewelink": ["accessToken"]
            }
        },
        "routines": {
            "enforce_delays": False,
            "max_delay_seconds": 300
        },
        "services": {
            "base_url": "http://localhost:3000",
            "traffic_path": "/api/traffic",
            "news_path": "/api/news/search",
            "timeout_seconds": 10
        },
        "database": {
            "host": "localhost",
            "port": 5432,
            "database": "automation_db",
            "username": "postgres",
            "password": "postgres"
        },
        "api": {
            "host": "0.0.0.0",
            "port": 8000
        },
        "monitoring": {
            "health_check_interval_minutes": 15
        },
        "logging": {
            "level": "INFO",
            "file": "logs/automation_server.log",
            "console_output": True,
            "timezone": "Europe/Paris"
        }
    }
