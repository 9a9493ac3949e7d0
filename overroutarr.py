import os
import sys
import json
import uuid
import re
import hmac
import logging
import logging.config
import argparse
from typing import List, Optional

from flask import Flask, request
from waitress import serve

from config import AppConfig, load_config
from overseerr_api import OverseerrClient
from processor import RequestProcessor

# =========================
# Global constants
# =========================
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
LOG_DIRECTORY = os.path.join(SCRIPT_DIR, 'logs')

LOG_FILE = os.path.join(LOG_DIRECTORY, 'overroutarr.log')
CONFIG_PATH = os.path.join(SCRIPT_DIR, 'config.yaml')

# =========================
# Logging setup
# =========================
class Colors:
    OKBLUE = '\033[94m'
    OKCYAN = '\033[96m'
    ENDC = '\033[0m'

class ColoredFormatter(logging.Formatter):
    colon_pattern = re.compile(r'^(.*?):\s(.*)$')

    def format(self, record):
        base_message = super().format(record)
        if getattr(record, 'is_console', False):
            media_label = getattr(record, 'media_label', None)
            media_value = getattr(record, 'media_value', None)
            if media_label is not None and media_value is not None:
                plain_substring = f"{media_label}: {media_value}"
                colored_substring = (f"{Colors.OKCYAN}{media_label}{Colors.ENDC}: "
                                     f"{Colors.OKBLUE}{media_value}{Colors.ENDC}")
                return base_message.replace(plain_substring, colored_substring)

            match = self.colon_pattern.match(base_message)
            if match:
                base_message = (f"{Colors.OKCYAN}{match.group(1)}{Colors.ENDC}: "
                                f"{Colors.OKBLUE}{match.group(2)}{Colors.ENDC}")
        return base_message

class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, self.datefmt),
            "lvl": record.levelname,
            "msg": record.getMessage(),
            "rid": getattr(record, 'request_id', ''),
            "cid": getattr(record, 'correlation_id', ''),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)

class ConsoleFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.is_console = True
        return True

class ContextDefaultsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'request_id'):
            record.request_id = ''
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = ''
        return True

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,

    'formatters': {
        'colored': {'()': f'{__name__}.ColoredFormatter',
                    'format': '%(asctime)s - %(levelname)s - %(message)s'},
        'json':    {'()': f'{__name__}.JsonFormatter'}
    },

    'filters': {
        'console_filter': {'()': f'{__name__}.ConsoleFilter'},
        'context_defaults': {'()': f'{__name__}.ContextDefaultsFilter'},
    },

    'handlers': {
        'console': {
            'level': 'DEBUG', 'class': 'logging.StreamHandler',
            'formatter': 'colored',
            'filters': ['console_filter', 'context_defaults']
        },
        'file': {
            'level': 'DEBUG', 'class': 'logging.FileHandler',
            'filename': LOG_FILE, 'formatter': 'json', 'encoding': 'utf-8',
            'filters': ['context_defaults']
        }
    },

    'root': {
        'level': os.environ.get('LOG_LEVEL', 'INFO'),
        'handlers': ['console', 'file']
    }
}

def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None):
    if log_level:
        LOGGING_CONFIG['root']['level'] = log_level.upper()
    if log_file:
        LOGGING_CONFIG['handlers']['file']['filename'] = log_file
    log_dir = os.path.dirname(LOGGING_CONFIG['handlers']['file']['filename'])
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    logging.config.dictConfig(LOGGING_CONFIG)

# =========================
# Flask app
# =========================
def _provided_token(request_data) -> str:
    provided = (request.headers.get('X-Webhook-Token', '') or '').strip()
    if not provided and isinstance(request_data, dict):
        hdrs = request_data.get('headers') or {}
        if isinstance(hdrs, dict):
            provided = (hdrs.get('X-Webhook-Token') or hdrs.get('x-webhook-token') or '').strip()
    return provided

def create_app(processor: RequestProcessor, webhook_token: Optional[str] = None) -> Flask:
    app = Flask(__name__)

    @app.route('/health', methods=['GET'])
    def health():
        return {'ok': True}, 200

    @app.route('/webhook', methods=['POST'])
    def handle_request():
        correlation_id = str(uuid.uuid4())

        # Parse JSON once (accept even if content-type is off)
        request_data = request.get_json(force=True, silent=True)

        if webhook_token:
            provided = _provided_token(request_data)
            if not provided or not hmac.compare_digest(str(provided), str(webhook_token)):
                logging.warning("Unauthorized webhook: missing or invalid token",
                                extra={'correlation_id': correlation_id})
                return ('Unauthorized', 401)

        if not isinstance(request_data, dict):
            logging.error("Invalid JSON payload", extra={'correlation_id': correlation_id})
            return ('Bad Request', 400)

        req = request_data.get('request')
        request_id = req.get('request_id') if isinstance(req, dict) else None
        try:
            processor.process(request_data, correlation_id)
        except Exception:
            logging.exception("Failed to process notification",
                              extra={'request_id': str(request_id or ''), 'correlation_id': correlation_id})
            return ('Internal Server Error', 500, {'Content-Type': 'text/plain'})

        return ('Accepted', 202, {'Content-Type': 'text/plain'})

    return app

# =========================
# Main
# =========================
def build_processor(config: AppConfig) -> RequestProcessor:
    client = OverseerrClient(config.overseerr_baseurl, config.overseerr_api_key,
                             timeout=config.request_timeout)
    return RequestProcessor(config, client)


def parse_cli_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='overroutarr',
                                     description='Route Overseerr requests by ordered rules')
    parser.add_argument('-c', '--config', default=CONFIG_PATH, help='Path to config.yaml')
    parser.add_argument('--log-level', default=None, help='Override the log level')
    parser.add_argument('--log-file', default=None, help='Override the log file path')
    sub = parser.add_subparsers(dest='cmd')

    p_gen = sub.add_parser('gen-token', help='Generate a webhook token')
    p_gen.add_argument('--size', type=int, default=32, help='Token size for secrets.token_urlsafe')

    sub.add_parser('check-config', help='Validate the config and list the rules in order')
    sub.add_parser('serve', help='Start the webhook server (default)')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_cli_args(argv)
    setup_logging(args.log_level, args.log_file)

    if args.cmd == 'gen-token':
        import secrets
        print(secrets.token_urlsafe(args.size))
        return 0

    try:
        config = load_config(args.config)
    except SystemExit as e:
        return int(e.code or 1)

    if config.log_level and not args.log_level:
        logging.getLogger().setLevel(config.log_level.upper())

    if args.cmd == 'check-config':
        print(f"{len(config.rules)} rule(s), evaluated top to bottom:")
        for index, rule in enumerate(config.rules, start=1):
            print(f"  {index}. {rule.describe()}")
        return 0

    # default: serve
    try:
        app = create_app(build_processor(config), config.webhook_token)
        logging.info(f"Configuration loaded with {len(config.rules)} rule(s). "
                     f"Starting server on {config.server.host}:{config.server.port}")
        serve(
            app,
            host=config.server.host,
            port=config.server.port,
            threads=config.server.threads,
            connection_limit=config.server.connection_limit,
        )
    except KeyboardInterrupt:
        return 130
    except Exception:
        logging.exception("Fatal error starting server")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
