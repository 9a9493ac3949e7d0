import logging
from typing import Any, Dict, Optional

from config import AppConfig
from enrichment import MediaAttributes, enrich_media
from rules import Rule, build_update, select_rule

TEST_NOTIFICATION = 'TEST_NOTIFICATION'


def log_media_details(details: dict, header: str = "Media Details", extra: Optional[dict] = None):
    extra = extra or {}
    logging.info("=" * 60, extra=extra)
    logging.info(header, extra=extra)
    logging.info("-" * 60, extra=extra)
    for k, v in details.items():
        if isinstance(v, list):
            v = ', '.join(map(str, v))
        logging.info("%s: %s", k, v, extra={**extra, 'media_label': k, 'media_value': v})
    logging.info("=" * 60, extra=extra)


class RequestProcessor:
    """
    Handles one webhook notification at a time:
      1) TEST_NOTIFICATION, and types outside notification_types when it is set,
         are acknowledged only
      2) music requests are approved directly
      3) everything else is enriched, matched against the rules in order,
         updated and optionally approved
    Failures from Overseerr propagate to the caller.
    """

    def __init__(self, config: AppConfig, client) -> None:
        self.config = config
        self.client = client

    def process(self, request_data: dict, correlation_id: str = '') -> Optional[Rule]:
        notification_type = request_data.get('notification_type') or ''
        req = request_data.get('request') or {}
        media = request_data.get('media') or {}
        request_id = req.get('request_id')
        extra = {'request_id': str(request_id or ''), 'correlation_id': correlation_id}

        if notification_type == TEST_NOTIFICATION:
            logging.info("Test notification received, no action required.", extra=extra)
            return None

        allowed = self.config.notification_types
        if allowed and notification_type not in allowed:
            logging.info(f"Ignoring notification type '{notification_type}'", extra=extra)
            return None

        if not request_id:
            raise ValueError("Notification is missing request.request_id")

        media_type = media.get('media_type')
        if media_type == 'music':
            logging.info("Media type is 'music', approving request automatically.", extra=extra)
            self.apply_configuration(request_id, None, True, extra)
            return None

        tmdb_id = media.get('tmdbId')
        if not media_type or not tmdb_id:
            raise ValueError("Notification is missing media.media_type or media.tmdbId")

        try:
            attributes = enrich_media(self.client, media_type, tmdb_id)
        except Exception as e:
            logging.error(f"Error fetching media details for request {request_id}: {e}", extra=extra)
            raise

        log_media_details(attributes.summary(), header=f"Processing Request {request_id}", extra=extra)
        return self.route(request_data, attributes, request_id, extra)

    def route(self, request_data: dict, attributes: MediaAttributes,
              request_id: Any, extra: Dict[str, str]) -> Optional[Rule]:
        rule = select_rule(self.config.rules, attributes, extra)
        if rule is None:
            logging.info("No applicable rule found.", extra=extra)
            return None

        put_data, approve = build_update(rule, request_data)
        self.apply_configuration(request_id, put_data, approve, extra)
        return rule

    def apply_configuration(self, request_id: Any, put_data: Optional[dict],
                            approve: bool, extra: Dict[str, str]) -> None:
        if self.config.dry_run:
            logging.warning("[DRY RUN] Would PUT %s and %s", put_data,
                            "approve" if approve else "not approve", extra=extra)
            return

        try:
            if put_data:
                self.client.update_request(request_id, put_data)
                logging.info(f"Configuration applied for request ID {request_id}", extra=extra)

            if approve:
                self.client.approve_request(request_id)
                logging.info(f"Request {request_id} approved.", extra=extra)
        except Exception as e:
            logging.error(f"Error processing request ID {request_id}: {e}", extra=extra)
            raise
