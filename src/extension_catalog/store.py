"""Extension record store - single source of all extension records.

Per RUTHLESS_SIMPLICITY: A dict keyed by id. Records are created lazily and
never deleted; views (installed, search result) reference them by id.
"""

import logging
from collections.abc import Iterator
from collections.abc import Mapping
from typing import Any

from .schema import ExtensionData
from .schema import ExtensionRecord

logger = logging.getLogger(__name__)


class ExtensionStore:
    """
    Mapping from extension id to its mutable record.

    The store owns every record. Callers may hold references but must go
    through ``upsert`` to change them, so each update is one complete merge.
    The store does not notify anybody; callers decide when to emit changes.
    """

    def __init__(self) -> None:
        self._records: dict[str, ExtensionRecord] = {}

    def get(self, extension_id: str) -> ExtensionRecord | None:
        """Get record by id, None if it was never referenced."""
        return self._records.get(extension_id)

    def upsert(
        self,
        extension_id: str,
        fields: Mapping[str, Any] | ExtensionData | None = None,
    ) -> ExtensionRecord:
        """
        Create record if absent, then merge the given fields into it.

        Merge is field-wise overwrite-if-present: fields missing from the update
        keep their current value. For ExtensionData only explicitly provided
        payload fields count as present.

        Args:
            extension_id: Catalog id (``publisher.name``)
            fields: Partial update, or None to only ensure the record exists

        Returns:
            The current record for ``extension_id``
        """
        record = self._records.get(extension_id)
        if record is None:
            record = ExtensionRecord(id=extension_id)
            self._records[extension_id] = record
            logger.debug(f"[{extension_id}]: created record")

        if isinstance(fields, ExtensionData):
            fields = fields.to_update()
        if fields:
            record.merge(fields)
        return record

    def __contains__(self, extension_id: object) -> bool:
        return extension_id in self._records

    def __iter__(self) -> Iterator[ExtensionRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)
