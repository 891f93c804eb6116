"""Entry records parsed from Day One journal exports.

Day One writes one JSON document per export with an ``entries`` list. Field
names follow the app's camelCase convention (``creationDate``,
``modifiedDate``); attachments appear either as ``photos`` or
``attachments`` depending on the export version. ``Entry.from_export`` maps
both shapes onto the dataclasses below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class Attachment:
    identifier: str
    filename: str
    content_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    checksum: Optional[str] = None

    @classmethod
    def from_export(cls, data: Mapping[str, Any]) -> "Attachment":
        identifier = str(data.get("identifier") or "")
        checksum = data.get("md5") or data.get("checksum")
        content_type = str(data.get("type") or data.get("contentType") or "")
        filename = data.get("filename")
        if not filename:
            # Day One stores media by md5 with the type as extension.
            stem = checksum or identifier or "attachment"
            filename = f"{stem}.{content_type}" if content_type else stem
        return cls(
            identifier=identifier,
            filename=str(filename),
            content_type=content_type,
            width=_to_optional_int(data.get("width")),
            height=_to_optional_int(data.get("height")),
            checksum=str(checksum) if checksum else None,
        )


@dataclass
class Entry:
    """A single journal entry as exported by Day One."""

    uuid: str
    title: Optional[str] = None
    creation_date: Optional[str] = None
    modified_date: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    text: str = ""
    attachments: List[Attachment] = field(default_factory=list)
    location: Optional[Dict[str, Any]] = None
    weather: Optional[Dict[str, Any]] = None
    journal: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_export(cls, data: Mapping[str, Any]) -> "Entry":
        uuid = data.get("uuid")
        if not uuid:
            raise ValueError("Export entry is missing a uuid")

        tags: List[str] = []
        for tag in data.get("tags") or []:
            tag = str(tag)
            if tag not in tags:
                tags.append(tag)

        media = data.get("attachments")
        if media is None:
            media = data.get("photos") or []
        attachments = [Attachment.from_export(item) for item in media if isinstance(item, Mapping)]

        creation_date = data.get("creationDate")
        modified_date = data.get("modifiedDate") or creation_date

        return cls(
            uuid=str(uuid),
            title=data.get("title") or None,
            creation_date=creation_date,
            modified_date=modified_date,
            tags=tags,
            text=data.get("text") or "",
            attachments=attachments,
            location=data.get("location") or None,
            weather=data.get("weather") or None,
            journal=data.get("journal") or data.get("journalName") or None,
            raw=dict(data),
        )

    @property
    def display_title(self) -> str:
        """Explicit title, else the first text line that is not an image or URL."""

        if self.title:
            return self.title
        for line in self.text.splitlines():
            candidate = line.strip()
            if not candidate or candidate.startswith("!") or candidate.startswith("http"):
                continue
            return candidate.lstrip("#").strip() or "Untitled"
        return "Untitled"

    def to_summary(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "title": self.display_title,
            "creationDate": self.creation_date,
        }


def normalize_timestamp(value: Any) -> Optional[str]:
    """Return ``value`` as a UTC timestamp with second precision.

    Day One has emitted both ``2024-03-01T10:00:00Z`` and
    ``2024-03-01T10:00:00.000Z`` for the same instant. Unparseable values are
    returned stripped so they still compare as opaque strings.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return text
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc).replace(microsecond=0)
    return parsed.strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
