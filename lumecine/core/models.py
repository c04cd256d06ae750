import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Float, ForeignKey, Text, DateTime, Enum, Table, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Aware datetimes stored as UTC. SQLite hands them back naive."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Provider(str, enum.Enum):
    SUPERFLIXAPI = "SUPERFLIXAPI"
    REDECANAIS = "REDECANAIS"
    WAREZCDN = "WAREZCDN"


class Audio(str, enum.Enum):
    DUBBED = "DUBBED"
    SUBTITLED = "SUBTITLED"


class Quality(str, enum.Enum):
    UNKNOWN = "UNKNOWN"
    SD = "SD"
    HD = "HD"
    FULL_HD = "FULL_HD"


class ContentType(str, enum.Enum):
    MOVIE = "movie"
    TV = "tv"


class TrendingType(str, enum.Enum):
    ALL = "ALL"
    POPULAR = "POPULAR"
    TOP_RATED = "TOP_RATED"
    THEATER = "THEATER"


def _uuid() -> str:
    return str(uuid.uuid4())


# --- GENRES ---
movie_genres = Table(
    "movie_genre_links",
    Base.metadata,
    Column("movie_id", Integer, ForeignKey("movies.id", ondelete="CASCADE"), primary_key=True),
    Column("genre_id", Integer, ForeignKey("movie_genres.id", ondelete="CASCADE"), primary_key=True),
)

series_genres = Table(
    "series_genre_links",
    Base.metadata,
    Column("series_id", Integer, ForeignKey("series.id", ondelete="CASCADE"), primary_key=True),
    Column("genre_id", Integer, ForeignKey("series_genres.id", ondelete="CASCADE"), primary_key=True),
)


class MovieGenre(Base):
    __tablename__ = "movie_genres"

    id = Column(Integer, primary_key=True, autoincrement=False)   # TMDB genre id
    name = Column(String, nullable=False)


class SeriesGenre(Base):
    __tablename__ = "series_genres"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String, nullable=False)


# --- CONTENT TABLES ---
class Movie(Base):
    __tablename__ = "movies"

    id = Column(Integer, primary_key=True, autoincrement=False)   # TMDB id
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    thumbnail = Column(String, default="")
    poster = Column(String, default="")
    rating = Column(Float, default=0)
    released_at = Column(UTCDateTime())

    genres = relationship("MovieGenre", secondary=movie_genres, lazy="selectin")
    streams = relationship("MovieStream", back_populates="movie", cascade="all, delete-orphan")


class Series(Base):
    __tablename__ = "series"

    id = Column(Integer, primary_key=True, autoincrement=False)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    thumbnail = Column(String, default="")
    poster = Column(String, default="")
    rating = Column(Float, default=0)
    released_at = Column(UTCDateTime())

    genres = relationship("SeriesGenre", secondary=series_genres, lazy="selectin")
    streams = relationship("SeriesStream", back_populates="series", cascade="all, delete-orphan")


# --- STREAM RECORDS ---
class MovieStream(Base):
    __tablename__ = "movie_streams"
    __table_args__ = (
        UniqueConstraint("movie_id", "provider", "audio", "quality", name="uix_movie_stream"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    provider = Column(Enum(Provider), nullable=False)
    movie_id = Column(Integer, ForeignKey("movies.id"), nullable=False, index=True)
    audio = Column(Enum(Audio), nullable=False)
    quality = Column(Enum(Quality), nullable=False, default=Quality.UNKNOWN)
    access_url = Column(String, default="")
    refresh_url = Column(String, default="")
    expires_at = Column(UTCDateTime(), nullable=False)

    movie = relationship("Movie", back_populates="streams")


class SeriesStream(Base):
    __tablename__ = "series_streams"
    __table_args__ = (
        UniqueConstraint("series_id", "provider", "season", "episode", "audio", name="uix_series_stream"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    provider = Column(Enum(Provider), nullable=False)
    series_id = Column(Integer, ForeignKey("series.id"), nullable=False, index=True)
    season = Column(Integer, nullable=False)      # zero-indexed
    episode = Column(Integer, nullable=False)     # zero-indexed
    audio = Column(Enum(Audio), nullable=False)
    access_url = Column(String, default="")
    refresh_url = Column(String, default="")
    expires_at = Column(UTCDateTime(), nullable=False)

    series = relationship("Series", back_populates="streams")
