import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Optional, Tuple

import yaml

from rules import Rule

REQUIRED_KEYS = [
    'overseerr_baseurl',
    'overseerr_api_key',
    'rules',
]

LOG_LEVELS = ('CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG')


@dataclass(frozen=True)
class ServerConfig:
    host: str = '0.0.0.0'
    port: int = 7777
    threads: int = 15
    connection_limit: int = 500


@dataclass(frozen=True)
class AppConfig:
    overseerr_baseurl: str
    overseerr_api_key: str
    rules: Tuple[Rule, ...]
    dry_run: bool = False
    webhook_token: Optional[str] = None
    # None processes every type except TEST_NOTIFICATION
    notification_types: Optional[Tuple[str, ...]] = None
    request_timeout: Optional[float] = None
    log_level: Optional[str] = None
    server: ServerConfig = field(default_factory=ServerConfig)


def parse_rules(raw_rules) -> Tuple[Rule, ...]:
    if not isinstance(raw_rules, list):
        logging.critical("'rules' must be a list.")
        sys.exit(1)

    rules = []
    for index, raw in enumerate(raw_rules, start=1):
        try:
            rules.append(Rule.from_dict(raw))
        except (KeyError, TypeError, ValueError) as e:
            logging.critical(f"Rule #{index} is invalid: missing or malformed {e}")
            sys.exit(1)
    return tuple(rules)


def _server_config(raw) -> ServerConfig:
    raw = raw or {}
    return ServerConfig(
        host=raw.get('host', '0.0.0.0'),
        port=int(raw.get('port', os.environ.get('PORT', 7777))),
        threads=int(raw.get('threads', 15)),
        connection_limit=int(raw.get('connection_limit', 500)),
    )


def build_config(raw: dict) -> AppConfig:
    missing = [k for k in REQUIRED_KEYS if k not in raw]
    if missing:
        logging.critical(f"Missing required configuration keys: {', '.join(missing)}")
        sys.exit(1)

    if not isinstance(raw.get('dry_run', False), bool):
        logging.critical("dry_run must be a boolean.")
        sys.exit(1)

    log_level = raw.get('log_level')
    if log_level is not None:
        log_level = str(log_level).upper()
        if log_level not in LOG_LEVELS:
            logging.critical(f"log_level must be one of: {', '.join(LOG_LEVELS)}.")
            sys.exit(1)

    types = raw.get('notification_types')
    timeout = raw.get('request_timeout')
    return AppConfig(
        overseerr_baseurl=str(raw['overseerr_baseurl']).rstrip('/'),
        overseerr_api_key=str(raw['overseerr_api_key']),
        rules=parse_rules(raw['rules']),
        dry_run=raw.get('dry_run', False),
        webhook_token=raw.get('webhook_token') or None,
        notification_types=tuple(types) if types else None,
        request_timeout=float(timeout) if timeout is not None else None,
        log_level=log_level,
        server=_server_config(raw.get('server')),
    )


def load_config(path: str) -> AppConfig:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logging.critical(f"Configuration file not found at {path}.")
        sys.exit(1)
    except yaml.YAMLError as e:
        logging.critical(f"Error parsing '{path}': {e}")
        sys.exit(1)

    if not isinstance(raw, dict):
        logging.critical(f"Configuration in '{path}' must be a mapping.")
        sys.exit(1)

    return build_config(raw)
