"""
VoiceNotes Backend — Note & Tag Schemas
=========================================

What:  Pydantic models for the note/tag API contract.
How:   Field names are snake_case in Python; the JSON keys the web client
       already speaks (isPinned, userId, date, updatedAt) are declared as
       aliases. `populate_by_name` lets services construct models by field
       name while FastAPI serializes by alias.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TAG_NAME_MAX_LENGTH = 50
TITLE_MAX_LENGTH = 255
PREVIEW_LENGTH = 200
REPHRASE_MAX_LENGTH = 20_000


def normalize_tag_names(names: List[str]) -> List[str]:
    """
    Strip whitespace, drop empties and duplicates (first occurrence wins).

        >>> normalize_tag_names([" work", "ideas", "work", ""])
        ['work', 'ideas']
    """
    seen = set()
    result = []
    for raw in names:
        name = raw.strip()
        if not name or name in seen:
            continue
        if len(name) > TAG_NAME_MAX_LENGTH:
            raise ValueError(
                f"Tag '{name[:20]}...' is longer than {TAG_NAME_MAX_LENGTH} characters"
            )
        seen.add(name)
        result.append(name)
    return result


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class TagResponse(BaseModel):
    """A tag as shown in the dashboard tag strip and on note cards."""
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class NoteResponse(BaseModel):
    """
    Full note, returned by create/get/update/pin.

    Example:
        {
            "id": 42,
            "title": "Groceries",
            "content": "<p>eggs</p>",
            "recording": null,
            "isPinned": false,
            "date": "2024-05-01T09:30:00Z",
            "updatedAt": "2024-05-01T09:31:12Z",
            "userId": "user_2abc",
            "tags": [{"id": 1, "name": "todo"}]
        }
    """
    id: int
    title: str
    content: str
    recording: Optional[str] = None
    is_pinned: bool = Field(alias="isPinned")
    created_at: datetime = Field(alias="date")
    updated_at: datetime = Field(alias="updatedAt")
    user_id: str = Field(alias="userId")
    tags: List[TagResponse] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class NoteListItem(NoteResponse):
    """
    Dashboard card: the full note plus a plain-text preview.

    The preview is the content with HTML stripped, cut at 200 characters, so
    the client does not need a DOM to render list cards.
    """
    preview: str = ""


class NoteGroup(BaseModel):
    """One dashboard section, e.g. "Today" or "March 2024"."""
    label: str
    notes: List[NoteListItem]


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NoteCreate(BaseModel):
    """Body of POST /api/note/create (first autosave of a new note)."""
    title: str = Field(default="", max_length=TITLE_MAX_LENGTH)
    content: str = Field(default="")
    tags: List[str] = Field(default_factory=list)
    recording: Optional[str] = Field(
        default=None,
        description="Public URL returned by POST /api/recording",
    )

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        return normalize_tag_names(v)


class NoteUpdate(BaseModel):
    """
    Body of PATCH /api/note/{id}.

    Every field is optional; omitted fields are left untouched. When `tags`
    is sent it replaces the note's tag set.
    """
    title: Optional[str] = Field(default=None, max_length=TITLE_MAX_LENGTH)
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    recording: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return normalize_tag_names(v)


class PinUpdate(BaseModel):
    """Body of PATCH /api/note/pin/{id}."""
    is_pinned: bool = Field(alias="isPinned")

    model_config = ConfigDict(populate_by_name=True)


class RephraseRequest(BaseModel):
    content: str = Field(min_length=1, max_length=REPHRASE_MAX_LENGTH)


class RephraseResponse(BaseModel):
    content: str


class MessageResponse(BaseModel):
    message: str
