# Configuration - JSON config file with defaults

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

CONFIG_ENV = 'ORDER_SYNC_CONFIG'
CONFIG_PATH = Path(__file__).resolve().parent.parent / 'config.json'

DEFAULTS: Dict[str, Any] = {
    'server_url': None,          # no server_url runs against the in-memory stub
    'api_key': None,
    'orders_path': '/api/tablet/orders',
    'db_path': 'order_sync.db',
    'poll_interval': 5,
    'probe_interval': 10,
    'request_timeout': 15,
    'auto_print': True,
    'status_port': 8080,
    'log_path': None,
}


def load_config(path=None) -> Dict[str, Any]:
    """Load config.json (or $ORDER_SYNC_CONFIG) merged over DEFAULTS"""
    config_path = Path(path or os.environ.get(CONFIG_ENV) or CONFIG_PATH)
    config = dict(DEFAULTS)
    if config_path.exists():
        with open(config_path) as f:
            loaded = json.load(f)
        unknown = set(loaded) - set(DEFAULTS)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        config.update({k: v for k, v in loaded.items() if k in DEFAULTS})
    return config
