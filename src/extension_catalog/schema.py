"""Extension data schemas - registry payloads, catalog records, host plugins.

Per IMPLEMENTATION_PHILOSOPHY: Registry JSON is parsed once at the boundary,
everything past it works with typed models.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import model_validator

# Keys of the Open VSX "files" object and the flat fields they populate
_FILE_KEYS = {
    "download": "downloadUrl",
    "icon": "iconUrl",
    "readme": "readmeUrl",
    "license": "licenseUrl",
}


class ExtensionData(BaseModel):
    """
    One registry payload for an extension (search summary or full detail).

    Every field is optional. Only the fields present in the payload end up in
    ``model_fields_set``, which is what makes merging partial: a search summary
    without a readme URL never erases a readme URL fetched earlier.
    """

    model_config = ConfigDict(populate_by_name=True)

    publisher: str | None = Field(default=None, validation_alias=AliasChoices("publisher", "namespace"))
    name: str | None = None
    display_name: str | None = Field(default=None, validation_alias=AliasChoices("displayName", "display_name"))
    version: str | None = None
    description: str | None = None
    icon_url: str | None = Field(default=None, validation_alias=AliasChoices("iconUrl", "icon_url"))
    download_url: str | None = Field(default=None, validation_alias=AliasChoices("downloadUrl", "download_url"))
    readme_url: str | None = Field(default=None, validation_alias=AliasChoices("readmeUrl", "readme_url"))
    license_url: str | None = Field(default=None, validation_alias=AliasChoices("licenseUrl", "license_url"))
    license: str | None = None
    repository: str | None = None
    average_rating: float | None = Field(
        default=None, validation_alias=AliasChoices("averageRating", "average_rating")
    )
    download_count: int | None = Field(
        default=None, validation_alias=AliasChoices("downloadCount", "download_count")
    )

    @model_validator(mode="before")
    @classmethod
    def _flatten_files(cls, data: Any) -> Any:
        """Lift Open VSX ``files.{download,icon,readme,license}`` into flat URL fields."""
        if not isinstance(data, dict) or not isinstance(data.get("files"), dict):
            return data
        flat = {key: value for key, value in data.items() if key != "files"}
        for file_key, field_alias in _FILE_KEYS.items():
            if file_key in data["files"] and field_alias not in flat:
                flat[field_alias] = data["files"][file_key]
        return flat

    @property
    def id(self) -> str | None:
        """Catalog id derived from publisher and name, None if either is missing."""
        if not self.publisher or not self.name:
            return None
        return extension_id(self.publisher, self.name)

    def to_update(self) -> dict[str, Any]:
        """Fields explicitly provided by the payload, ready for a record merge."""
        return self.model_dump(include=set(self.model_fields_set))


class ExtensionRecord(BaseModel):
    """
    Catalog record for one extension.

    Created with just an id and enriched by merges from search results,
    registry details, host install state and rendered readmes.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    publisher: str | None = None
    name: str | None = None
    display_name: str | None = None
    version: str | None = None
    description: str | None = None
    icon_url: str | None = None
    download_url: str | None = None
    readme_url: str | None = None
    license_url: str | None = None
    license: str | None = None
    repository: str | None = None
    average_rating: float | None = None
    download_count: int | None = None

    # Rendered, sanitized readme HTML
    readme: str | None = None

    # Host install state
    installed: bool = False
    installed_version: str | None = None

    def merge(self, fields: Mapping[str, Any]) -> None:
        """
        Apply a partial update field by field.

        The merged record is validated as a whole before anything is written,
        so a rejected update leaves this record untouched.

        Raises:
            ValueError: If the update tries to change the id
            pydantic.ValidationError: If a field is unknown or has the wrong type
        """
        if "id" in fields and fields["id"] != self.id:
            raise ValueError(f"Cannot change extension id from '{self.id}' to '{fields['id']}'")

        merged = type(self).model_validate({**self.model_dump(), **fields})
        for field_name in fields:
            setattr(self, field_name, getattr(merged, field_name))


class HostPlugin(BaseModel):
    """Plugin reported by the host runtime."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    engine_type: str = Field(validation_alias=AliasChoices("engineType", "engine_type"))
    version: str | None = None


def extension_id(publisher: str, name: str) -> str:
    """Build the catalog id ``publisher.name`` (lower-cased)."""
    return f"{publisher.lower()}.{name.lower()}"
