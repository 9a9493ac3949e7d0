import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from enrichment import ContentRating

REQUESTED_SEASONS = "Requested Seasons"


# =========================
# Rule records
# =========================
@dataclass(frozen=True)
class RatingCriterion:
    rating: str
    country: Optional[str] = None

    @staticmethod
    def from_dict(data: dict) -> "RatingCriterion":
        country = data.get("iso_3166_1", data.get("country"))
        return RatingCriterion(rating=str(data.get("rating", "")), country=country or None)


@dataclass(frozen=True)
class MatchCriteria:
    """Optional conditions of a rule. ``None`` means no constraint on that dimension."""

    genres: Optional[Tuple[str, ...]] = None
    exclude_keywords: Optional[Tuple[str, ...]] = None
    include_keywords: Optional[Tuple[str, ...]] = None
    content_ratings: Tuple[RatingCriterion, ...] = ()
    original_language: str = ""

    @staticmethod
    def from_dict(data: Optional[dict]) -> "MatchCriteria":
        data = data or {}

        def _strings(key: str) -> Optional[Tuple[str, ...]]:
            values = data.get(key)
            if values is None:
                return None
            if isinstance(values, str):
                values = [values]
            return tuple(str(v) for v in values)

        return MatchCriteria(
            genres=_strings("genres"),
            exclude_keywords=_strings("exclude_keywords"),
            include_keywords=_strings("include_keywords"),
            content_ratings=tuple(
                RatingCriterion.from_dict(r) for r in data.get("content_ratings") or []
            ),
            original_language=data.get("original_language") or "",
        )


@dataclass(frozen=True)
class ApplyConfig:
    root_folder: str
    server_id: int
    quality_profile_id: Optional[int] = None
    approve: bool = False

    @staticmethod
    def from_dict(data: dict) -> "ApplyConfig":
        return ApplyConfig(
            root_folder=data["root_folder"],
            server_id=int(data["server_id"]),
            quality_profile_id=data.get("quality_profile_id"),
            approve=bool(data.get("approve", False)),
        )


@dataclass(frozen=True)
class Rule:
    media_type: str
    apply: ApplyConfig
    match: MatchCriteria = field(default_factory=MatchCriteria)

    @staticmethod
    def from_dict(data: dict) -> "Rule":
        return Rule(
            media_type=data["media_type"],
            apply=ApplyConfig.from_dict(data["apply"]),
            match=MatchCriteria.from_dict(data.get("match")),
        )

    def describe(self) -> str:
        return (f"{self.media_type} -> server={self.apply.server_id} "
                f"root='{self.apply.root_folder}' "
                f"profile={self.apply.quality_profile_id or '-'} "
                f"approve={self.apply.approve}")


# =========================
# Matcher
# =========================
def _keyword_hit(needles: Sequence[str], keyword_names: List[str]) -> bool:
    # substring containment, not exact term match
    return any(n in k for n in needles for k in keyword_names)


def match_ratings(media_ratings: Sequence[ContentRating],
                  criteria: Sequence[RatingCriterion]) -> bool:
    if not criteria:
        return True
    return any(
        rating.rating == crit.rating
        and (crit.country is None or rating.country == crit.country)
        for crit in criteria
        for rating in media_ratings
    )


def matches(media, match: MatchCriteria) -> bool:
    """
    Evaluate every criterion except original_language (see language_gate).
    Absent criteria pass. An explicitly empty genre or include list never matches.
    """
    genre_names = [g.name for g in media.genres]
    keyword_names = [k.name for k in media.keywords]

    genres_ok = match.genres is None or any(g in genre_names for g in match.genres)
    exclude_ok = (match.exclude_keywords is None
                  or not _keyword_hit(match.exclude_keywords, keyword_names))
    include_ok = (match.include_keywords is None
                  or _keyword_hit(match.include_keywords, keyword_names))
    ratings_ok = match_ratings(media.content_ratings, match.content_ratings)

    return genres_ok and exclude_ok and include_ok and ratings_ok


def language_gate(media, match: MatchCriteria, extra: Optional[Dict[str, Any]] = None) -> bool:
    if match.original_language and media.original_language != match.original_language:
        logging.info(
            "Original language mismatch: expected %s, got %s",
            match.original_language, media.original_language or "<none>",
            extra=extra or {},
        )
        return False
    return True


# =========================
# Selector
# =========================
def select_rule(rules: Sequence[Rule], media,
                extra: Optional[Dict[str, Any]] = None) -> Optional[Rule]:
    """Return the first rule, in configured order, whose checks all pass."""
    for index, rule in enumerate(rules):
        if rule.media_type != media.media_type:
            continue
        if not language_gate(media, rule.match, extra):
            continue
        if matches(media, rule.match):
            logging.info("Rule #%d matched: %s", index + 1, rule.describe(), extra=extra or {})
            return rule
        logging.debug("Rule #%d did not match", index + 1, extra=extra or {})
    return None


# =========================
# Update document
# =========================
def requested_seasons(extra_items: Optional[List[dict]]) -> List[int]:
    for item in extra_items or []:
        if isinstance(item, dict) and item.get("name") == REQUESTED_SEASONS:
            value = str(item.get("value") or "")
            return [int(s.strip()) for s in value.split(",") if s.strip().isdigit()]
    return []


def build_update(rule: Rule, notification: dict) -> Tuple[Dict[str, Any], bool]:
    """Build the PUT body for the matched rule and return it with the approve flag."""
    put_data: Dict[str, Any] = {
        "mediaType": rule.media_type,
        "rootFolder": rule.apply.root_folder,
        "serverId": rule.apply.server_id,
    }
    if rule.apply.quality_profile_id:
        put_data["profileId"] = rule.apply.quality_profile_id

    if rule.media_type == "tv":
        seasons = requested_seasons(notification.get("extra"))
        if seasons:
            put_data["seasons"] = seasons

    return put_data, rule.apply.approve
