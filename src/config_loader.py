"""
Configuration loader for the Daikin exporter
Loads and validates configuration from YAML files
Intervals are in milliseconds
"""

import copy
import yaml
import logging
from typing import Dict, Any, Optional
from pathlib import Path
from datetime import datetime
import pytz

from protocol.codec import OPTIONAL_QUERY_GROUPS, QUERY_GROUPS
from udp_helper import parse_bind_address

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    'bind_address': '0.0.0.0:9150',
    'discover_bind_address': '0.0.0.0:0',
    'discover_broadcast_addresses': ['255.255.255.255'],
    'discover_port': 30050,
    'discover_major_interval': 300000,   # 5 minutes between bursts
    'discover_minor_interval': 200,      # gap between the two probes of a burst
    'discover_enabled': True,
    'refresh_interval': 7500,            # about twice the scrape interval
    'refresh_timeout': 250,
    'query_groups': ['basic', 'control', 'sensor'],
    'hosts': [],
}

INTERVAL_KEYS = ('discover_major_interval', 'discover_minor_interval', 'refresh_interval', 'refresh_timeout')

def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation.
    Without a path every setting takes its default.
    """
    config: Dict[str, Any] = {}

    if config_path:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_file, 'r') as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse configuration: {e}")
            raise ValueError(f"Invalid YAML in {config_path}: {e}")

        if not isinstance(config, dict):
            raise ValueError(f"Configuration root must be a mapping: {config_path}")

    config = _apply_defaults(config)
    _validate_config(config)

    logger.info(f"Configuration loaded from {config_path or 'defaults'}")
    return config

def _validate_config(config: Dict) -> None:
    """Validate types and ranges of the core settings"""
    for key in INTERVAL_KEYS:
        value = config[key]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"{key} must be a positive integer number of milliseconds (got {value!r})")

    if config['refresh_timeout'] > config['refresh_interval']:
        logger.warning(f"refresh_timeout ({config['refresh_timeout']}ms) exceeds refresh_interval "
                       f"({config['refresh_interval']}ms) - slow units will skip ticks")

    if config['discover_minor_interval'] * 2 > config['discover_major_interval']:
        raise ValueError("discover_major_interval must be at least twice discover_minor_interval")

    hosts = config['hosts']
    if not isinstance(hosts, list) or not all(isinstance(h, str) and h.strip() for h in hosts):
        raise ValueError("hosts must be a list of IP address or hostname strings")

    groups = config['query_groups']
    if not isinstance(groups, list) or not groups:
        raise ValueError("query_groups must be a non-empty list")
    for group in groups:
        if group not in QUERY_GROUPS:
            raise ValueError(f"Unknown query group '{group}' (known: {', '.join(QUERY_GROUPS)})")
    optional = [group for group in groups if group in OPTIONAL_QUERY_GROUPS]
    if optional:
        logger.warning(f"query_groups includes {', '.join(optional)}: a unit whose firmware rejects these "
                       f"is reported unreachable and none of its values are cached")

    addresses = config['discover_broadcast_addresses']
    if not isinstance(addresses, list) or not addresses:
        raise ValueError("discover_broadcast_addresses must be a non-empty list")

    port = config['discover_port']
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ValueError(f"discover_port must be a valid UDP port (got {port!r})")

    for key in ('bind_address', 'discover_bind_address'):
        parse_bind_address(str(config[key]))

    tz_name = config['logging']['timezone']
    if tz_name not in pytz.all_timezones_set:
        raise ValueError(f"Unknown logging timezone: {tz_name}")

def _apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""
    config = dict(config)

    for key, default_value in DEFAULTS.items():
        if key not in config or config[key] is None:
            config[key] = copy.deepcopy(default_value)

    # Logging defaults
    if not isinstance(config.get('logging'), dict):
        config['logging'] = {}
    logging_defaults = {
        'level': 'INFO',
        'file': None,
        'console_output': True,
        'timezone': 'UTC'
    }
    for key, default_value in logging_defaults.items():
        if key not in config['logging']:
            config['logging'][key] = default_value

    # Monitoring defaults
    if not isinstance(config.get('monitoring'), dict):
        config['monitoring'] = {}
    monitoring_defaults = {
        'health_check_interval_minutes': 5
    }
    for key, default_value in monitoring_defaults.items():
        if key not in config['monitoring']:
            config['monitoring'][key] = default_value

    return config


class TimezoneFormatter(logging.Formatter):
    """Formatter that renders timestamps in a configured timezone"""

    def __init__(self, fmt=None, tz_name: str = 'UTC'):
        super().__init__(fmt)
        self.tz = pytz.timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            # Default format: YYYY-MM-DD HH:MM:SS TZ
            return dt.strftime('%Y-%m-%d %H:%M:%S %Z')

def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = TimezoneFormatter(log_format, log_config.get('timezone', 'UTC'))

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    # Replace handlers installed by an earlier call only
    for handler in list(root.handlers):
        if getattr(handler, '_exporter_handler', False):
            root.removeHandler(handler)

    # Console handler
    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler._exporter_handler = True
        root.addHandler(console_handler)

    # File handler
    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler._exporter_handler = True
        root.addHandler(file_handler)

    logger.info(f"Logging configured: level={level}, console={log_config.get('console_output', True)}, "
                f"file={log_file}, timezone={log_config.get('timezone', 'UTC')}")

def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    return {
        "bind_address": "0.0.0.0:9150",
        "discover_bind_address": "0.0.0.0:30000",
        "discover_broadcast_addresses": ["192.168.1.255"],
        "discover_major_interval": 300000,
        "discover_minor_interval": 200,
        "refresh_interval": 7500,
        "refresh_timeout": 250,
        "query_groups": ["basic", "control", "sensor"],
        "hosts": ["192.168.1.40", "bedroom-ac.lan"],
        "logging": {
            "level": "INFO",
            "file": "logs/daikin_exporter.log",
            "console_output": True,
            "timezone": "America/New_York"
        },
        "monitoring": {
            "health_check_interval_minutes": 5
        }
    }
