import os
import sys
import unittest
from unittest.mock import MagicMock

import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from config import build_config
from processor import RequestProcessor


ANIME_TV_DETAILS = {
    "name": "Frieren",
    "originalLanguage": "ja",
    "genres": [{"id": 16, "name": "Animation"}],
    "keywords": [{"id": 210024, "name": "anime"}],
    "contentRatings": {"results": [{"iso_3166_1": "US", "rating": "TV-14"}]},
}

PG_MOVIE_DETAILS = {
    "title": "Paddington",
    "originalLanguage": "en",
    "genres": [{"id": 10751, "name": "Family"}],
    "keywords": [],
    "releases": {"results": [
        {"iso_3166_1": "US", "release_dates": [{"certification": "PG"}]}]},
}


def make_config(rules, **overrides):
    raw = {
        "overseerr_baseurl": "http://overseerr:5055",
        "overseerr_api_key": "key",
        "rules": rules,
    }
    raw.update(overrides)
    return build_config(raw)


def notification(media_type, tmdb_id=1, extra=None, notification_type="MEDIA_PENDING"):
    return {
        "notification_type": notification_type,
        "media": {"media_type": media_type, "tmdbId": tmdb_id},
        "request": {"request_id": 42, "requestedBy_username": "alice"},
        "extra": extra or [],
    }


class TestRequestProcessor(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.anime_rule = {
            "media_type": "tv",
            "match": {"genres": ["Animation"], "include_keywords": ["anime"]},
            "apply": {"root_folder": "/tv/anime", "server_id": 1,
                      "quality_profile_id": 9, "approve": True},
        }

    def test_test_notification_is_noop(self):
        processor = RequestProcessor(make_config([self.anime_rule]), self.client)
        processor.process(notification("tv", notification_type="TEST_NOTIFICATION"))
        self.client.assert_not_called()
        self.assertEqual(self.client.method_calls, [])

    def test_opt_in_filter_ignores_other_types(self):
        config = make_config([self.anime_rule], notification_types=["MEDIA_PENDING"])
        processor = RequestProcessor(config, self.client)
        processor.process(notification("tv", notification_type="MEDIA_AVAILABLE"))
        self.assertEqual(self.client.method_calls, [])

    def test_approved_notifications_are_routed_by_default(self):
        catch_all = {"media_type": "movie", "match": {},
                     "apply": {"root_folder": "/movies", "server_id": 0}}
        self.client.get_media.return_value = PG_MOVIE_DETAILS
        processor = RequestProcessor(make_config([catch_all, self.anime_rule]), self.client)

        for notification_type in ("MEDIA_AUTO_APPROVED", "MEDIA_APPROVED"):
            processor.process(notification("movie", notification_type=notification_type))
        self.client.get_media.return_value = ANIME_TV_DETAILS
        processor.process(notification("tv", notification_type="MEDIA_AUTO_APPROVED"))

        self.assertEqual(self.client.get_media.call_count, 3)
        self.assertEqual(self.client.update_request.call_count, 3)
        self.assertEqual(self.client.update_request.call_args[0][1]["rootFolder"], "/tv/anime")

    def test_approve_failure_after_update_propagates(self):
        self.client.get_media.return_value = ANIME_TV_DETAILS
        self.client.approve_request.side_effect = requests.HTTPError("503 Service Unavailable")
        processor = RequestProcessor(make_config([self.anime_rule]), self.client)

        with self.assertLogs(level="ERROR") as logs:
            with self.assertRaises(requests.HTTPError):
                processor.process(notification("tv"), correlation_id="cid-1")

        self.client.update_request.assert_called_once()
        self.client.approve_request.assert_called_once_with(42)
        record = logs.records[-1]
        self.assertEqual(record.request_id, "42")
        self.assertIn("request ID 42", record.getMessage())

    def test_music_is_approved_without_lookup(self):
        processor = RequestProcessor(make_config([]), self.client)
        processor.process(notification("music"))
        self.client.approve_request.assert_called_once_with(42)
        self.client.get_media.assert_not_called()
        self.client.update_request.assert_not_called()

    def test_anime_tv_matches_without_seasons(self):
        self.client.get_media.return_value = ANIME_TV_DETAILS
        processor = RequestProcessor(make_config([self.anime_rule]), self.client)

        rule = processor.process(notification("tv", tmdb_id=209867))

        self.assertEqual(rule.apply.root_folder, "/tv/anime")
        self.client.get_media.assert_called_once_with("tv", 209867)
        self.client.update_request.assert_called_once_with(42, {
            "mediaType": "tv", "rootFolder": "/tv/anime", "serverId": 1, "profileId": 9,
        })
        self.client.approve_request.assert_called_once_with(42)

    def test_tv_requested_seasons_are_sent(self):
        self.client.get_media.return_value = ANIME_TV_DETAILS
        processor = RequestProcessor(make_config([self.anime_rule]), self.client)
        processor.process(notification(
            "tv", extra=[{"name": "Requested Seasons", "value": "1,2,3"}]))
        put_data = self.client.update_request.call_args[0][1]
        self.assertEqual(put_data["seasons"], [1, 2, 3])

    def test_country_agnostic_movie_rule_without_approval(self):
        self.client.get_media.return_value = PG_MOVIE_DETAILS
        rule = {"media_type": "movie", "match": {"content_ratings": [{"rating": "PG"}]},
                "apply": {"root_folder": "/movies/kids", "server_id": 0}}
        processor = RequestProcessor(make_config([rule]), self.client)

        processor.process(notification("movie"))

        self.client.update_request.assert_called_once_with(
            42, {"mediaType": "movie", "rootFolder": "/movies/kids", "serverId": 0})
        self.client.approve_request.assert_not_called()

    def test_no_rule_for_media_type(self):
        self.client.get_media.return_value = PG_MOVIE_DETAILS
        processor = RequestProcessor(make_config([self.anime_rule]), self.client)
        with self.assertLogs(level="INFO") as logs:
            result = processor.process(notification("movie"))
        self.assertIsNone(result)
        self.client.update_request.assert_not_called()
        self.client.approve_request.assert_not_called()
        self.assertTrue(any("No applicable rule found" in line for line in logs.output))

    def test_fetch_failure_propagates(self):
        self.client.get_media.side_effect = requests.ConnectionError("refused")
        processor = RequestProcessor(make_config([self.anime_rule]), self.client)
        with self.assertRaises(requests.ConnectionError):
            processor.process(notification("tv"))
        self.client.update_request.assert_not_called()

    def test_update_failure_skips_approval(self):
        self.client.get_media.return_value = ANIME_TV_DETAILS
        self.client.update_request.side_effect = requests.HTTPError("500")
        processor = RequestProcessor(make_config([self.anime_rule]), self.client)
        with self.assertRaises(requests.HTTPError):
            processor.process(notification("tv"))
        self.client.approve_request.assert_not_called()

    def test_dry_run_sends_nothing(self):
        self.client.get_media.return_value = ANIME_TV_DETAILS
        processor = RequestProcessor(make_config([self.anime_rule], dry_run=True), self.client)
        rule = processor.process(notification("tv"))
        self.assertIsNotNone(rule)
        self.client.update_request.assert_not_called()
        self.client.approve_request.assert_not_called()

    def test_missing_request_id_raises(self):
        processor = RequestProcessor(make_config([]), self.client)
        payload = notification("tv")
        payload["request"] = {}
        with self.assertRaises(ValueError):
            processor.process(payload)


if __name__ == "__main__":
    unittest.main()
