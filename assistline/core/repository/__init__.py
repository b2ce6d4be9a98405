from assistline.core.repository.base import BaseRepository

__all__ = ["BaseRepository"]
