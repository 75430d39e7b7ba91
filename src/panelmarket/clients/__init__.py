"""Rate-limited clients for the external comic data APIs."""

from panelmarket.clients.base import RateLimitedClient
from panelmarket.clients.comicvine import ComicVineClient
from panelmarket.clients.isbndb import CreatorBiography, IsbndbClient
from panelmarket.clients.marvel import MarvelClient

__all__ = [
    "ComicVineClient",
    "CreatorBiography",
    "IsbndbClient",
    "MarvelClient",
    "RateLimitedClient",
]
