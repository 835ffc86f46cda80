from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from .models import Photo, PhotoCategory, utcnow
from .payloads import PhotoInput, PhotoUpload


class PhotoNormalizer:
    """Convert raw data URLs and form uploads into canonical ``Photo`` records."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory or _photo_id

    def normalize(self, item: PhotoInput | Photo | Mapping[str, Any]) -> Photo:
        if isinstance(item, Photo):
            return item.model_copy(deep=True)
        if isinstance(item, str):
            upload = PhotoUpload(data_url=item)
        elif isinstance(item, PhotoUpload):
            upload = item
        elif isinstance(item, Mapping):
            upload = PhotoUpload.model_validate(item)
        else:
            raise TypeError(f"Unsupported photo input: {type(item).__name__}")

        return Photo(
            id=upload.id or self._id_factory(),
            category=upload.category or PhotoCategory.OTHER,
            data_url=upload.data_url,
            description=upload.description,
            created_at=upload.created_at or self._clock(),
        )

    def normalize_many(self, items: Iterable[PhotoInput | Photo | Mapping[str, Any]] | None) -> list[Photo]:
        if not items:
            return []
        return [self.normalize(item) for item in items]

    def flatten(self, *sources: Iterable[PhotoInput | Photo | Mapping[str, Any]] | None) -> list[Photo]:
        """Normalize several photo lists into one, keeping source and item order."""

        photos: list[Photo] = []
        for source in sources:
            photos.extend(self.normalize_many(source))
        return photos


def _photo_id() -> str:
    return f"photo-{uuid.uuid4().hex[:12]}"
