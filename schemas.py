"""
Database Schemas for Portfolio CMS

Each Pydantic model = one MongoDB collection (lowercased class name).
Fields are stored and served in camelCase; Python code uses snake_case.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Type

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from errors import ValidationFailed, field_errors

MESSAGE_STATUSES = ("unread", "read", "replied", "archived")


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return str(ObjectId())


UtcDatetime = Annotated[datetime, AfterValidator(_utc)]


class Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# Auth
class User(Document):
    email: EmailStr
    password_hash: str
    role: Literal["user", "admin"] = "user"

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


# Content
class ProjectImage(Document):
    url: str
    alt: str = ""


class Project(Document):
    title: str = Field(..., min_length=1, max_length=100)
    short_description: str = Field(..., min_length=1, max_length=200)
    full_description: str = Field(..., min_length=1)
    technologies: List[str] = []
    category: Literal["Web Development", "Mobile App", "Desktop App", "AI/ML", "Data Science", "Other"] = "Web Development"
    images: List[ProjectImage] = []
    thumbnail_image: str = ""  # object store url
    live_url: str = ""
    github_url: str = ""
    status: Literal["draft", "published", "archived"] = "draft"
    featured: bool = False
    view_count: int = Field(0, ge=0)
    publish_date: UtcDatetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completion_date: Optional[UtcDatetime] = None
    tags: List[str] = []
    order: int = 0


class Skill(Document):
    name: str = Field(..., min_length=1)
    category: Literal["Frontend", "Backend", "Database", "DevOps", "Mobile", "Tools", "Other"]
    proficiency: int = Field(..., ge=0, le=100)
    icon: str = ""
    description: str = ""
    years_of_experience: float = Field(0, ge=0)
    is_active: bool = True
    order: int = 0
    color: str = "#00ff41"


class SocialLinks(Document):
    github: str = ""
    linkedin: str = ""
    twitter: str = ""
    instagram: str = ""
    facebook: str = ""
    youtube: str = ""
    website: str = ""


class Experience(Document):
    id: str = Field(default_factory=_new_id)
    company: str = Field(..., min_length=1)
    position: str = Field(..., min_length=1)
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    current: bool = False
    description: str = ""


class Education(Document):
    id: str = Field(default_factory=_new_id)
    institution: str = Field(..., min_length=1)
    degree: str = Field(..., min_length=1)
    field: str = ""
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    description: str = ""


class Profile(Document):
    full_name: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = ""
    location: str = ""
    bio: str = ""
    about: str = ""
    profile_image: str = ""
    cover_image: str = ""
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    resume_url: str = ""
    experience: List[Experience] = []
    education: List[Education] = []
    seo_title: str = ""
    seo_description: str = ""
    seo_keywords: List[str] = []
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("experience", "education")
    @classmethod
    def unique_entry_ids(cls, entries: list) -> list:
        ids = [e.id for e in entries]
        if len(ids) != len(set(ids)):
            raise ValueError("Entry ids must be unique")
        return entries


class Message(Document):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    status: Literal["unread", "read", "replied", "archived"] = "unread"
    is_starred: bool = False
    admin_notes: str = ""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


DEFAULT_PROFILE = {
    "fullName": "Your Name",
    "title": "Full Stack Developer",
    "email": "your.email@example.com",
    "bio": "Your bio here...",
    "about": "About yourself here...",
}

# Bookkeeping fields that live on stored documents but are not part of a schema
STORED_ONLY = ("_id", "createdAt", "updatedAt")


def collect_errors(schema: Type[Document], data: Dict[str, Any]) -> List[Dict[str, str]]:
    """Return ``[{field, message}]`` for every constraint ``data`` breaks."""
    try:
        schema.model_validate(data)
    except ValidationError as exc:
        return field_errors(exc)
    return []


def validate_document(schema: Type[Document], data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a whole document and return it in stored (camelCase) form.

    Raises ValidationFailed with the structured error list; nothing is
    written by callers in that case.
    """
    fields = {k: v for k, v in data.items() if k not in STORED_ONLY}
    errors = collect_errors(schema, fields)
    if errors:
        raise ValidationFailed(errors=errors)
    return schema.model_validate(fields).model_dump(by_alias=True)


def merge_document(schema: Type[Document], existing: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Validate ``existing`` with ``changes`` applied, as a full document."""
    return validate_document(schema, {**existing, **changes})
