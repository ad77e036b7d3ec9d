from actorsync.datasource.base import BaseDataSource
from actorsync.datasource.tmdb import TMDBSource

__all__ = ["BaseDataSource", "TMDBSource"]
