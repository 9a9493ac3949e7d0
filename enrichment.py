import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List


@dataclass
class Genre:
    id: int
    name: str

    @staticmethod
    def from_dict(data: dict) -> "Genre":
        return Genre(id=data.get("id"), name=data.get("name", ""))


@dataclass
class Keyword:
    id: int
    name: str

    @staticmethod
    def from_dict(data: dict) -> "Keyword":
        return Keyword(id=data.get("id"), name=data.get("name", ""))


@dataclass
class ContentRating:
    country: str
    rating: str


@dataclass
class MediaAttributes:
    media_type: str
    tmdb_id: Any = None
    title: str = ""
    genres: List[Genre] = field(default_factory=list)
    keywords: List[Keyword] = field(default_factory=list)
    original_language: str = ""
    content_ratings: List[ContentRating] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            "Title": self.title or "Unknown",
            "Media Type": self.media_type,
            "TMDB ID": self.tmdb_id,
            "Genres": [g.name for g in self.genres],
            "Keywords": [k.name for k in self.keywords],
            "Original Language": self.original_language or "Unknown",
            "Content Ratings": [f"{r.country}:{r.rating}" for r in self.content_ratings] or "None",
        }


# =========================
# Content rating normalisation
# =========================
def movie_ratings(details: dict) -> List[ContentRating]:
    # one certification per country, taken from its first release date
    ratings = []
    for release in (details.get("releases") or {}).get("results", []) or []:
        dates = release.get("release_dates") or []
        cert = (dates[0].get("certification") or "") if dates else ""
        if cert:
            ratings.append(ContentRating(country=release.get("iso_3166_1", ""), rating=cert))
    return ratings


def tv_ratings(details: dict) -> List[ContentRating]:
    return [
        ContentRating(country=r.get("iso_3166_1", ""), rating=r.get("rating", ""))
        for r in (details.get("contentRatings") or {}).get("results", []) or []
    ]


RATING_NORMALISERS: Dict[str, Callable[[dict], List[ContentRating]]] = {
    "movie": movie_ratings,
    "tv": tv_ratings,
}


def _keywords(details: dict) -> List[Keyword]:
    keywords_data = details.get("keywords") or []
    if isinstance(keywords_data, dict):
        keywords_data = keywords_data.get("results", []) or []
    return [Keyword.from_dict(k) for k in keywords_data]


def to_media_attributes(media_type: str, tmdb_id: Any, details: dict) -> MediaAttributes:
    normaliser = RATING_NORMALISERS.get(media_type)
    if normaliser is None:
        logging.warning(f"No content rating normaliser for media type '{media_type}'")
        ratings: List[ContentRating] = []
    else:
        ratings = normaliser(details)

    return MediaAttributes(
        media_type=media_type,
        tmdb_id=tmdb_id,
        title=details.get("title") or details.get("name") or "",
        genres=[Genre.from_dict(g) for g in details.get("genres") or []],
        keywords=_keywords(details),
        original_language=details.get("originalLanguage") or "",
        content_ratings=ratings,
    )


def enrich_media(client, media_type: str, tmdb_id: Any) -> MediaAttributes:
    details = client.get_media(media_type, tmdb_id)
    return to_media_attributes(media_type, tmdb_id, details)
