"""
Database Schemas for the Portfolio API

Each Pydantic model = one MongoDB collection (lowercased class name).
Sub-resource models carry only their own fields; the owning `user_id` and the
created/updated timestamps are stamped on by the storage layer.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

Role = Literal["admin", "user"]
SkillLevel = Literal["Beginner", "Intermediate", "Advanced"]


# Identity
class User(BaseModel):
    username: str = Field(..., min_length=1, description="Unique public handle")
    email: EmailStr
    password: str = Field(..., description="Hashed password")
    profile_image: str = ""
    role: Role = "user"
    refresh_token: str = ""

    @field_validator("username")
    @classmethod
    def _strip_username(cls, value: str) -> str:
        return value.strip()

    @field_validator("email")
    @classmethod
    def _fold_email(cls, value: str) -> str:
        return value.strip().lower()


# Portfolio sections
class Introduction(BaseModel):
    greeting: str
    name: str
    tagline: str
    description: str
    profile_image: str = ""  # media url
    resume: str = ""  # media url


class Education(BaseModel):
    institution: str
    degree: str
    field_of_study: str
    start_date: datetime
    end_date: Optional[datetime] = None
    grade: str = ""
    description: str = ""
    logo: str = ""


class Experience(BaseModel):
    title: str
    company: str
    location: str = ""
    start_date: datetime
    end_date: Optional[datetime] = None
    responsibilities: List[str] = []
    tech_stack: List[str] = []
    logo: str = ""


class SkillItem(BaseModel):
    name: str = Field(..., min_length=1)
    level: SkillLevel


class Skill(BaseModel):
    category: str
    skills: List[SkillItem] = Field(..., min_length=1)


class Project(BaseModel):
    title: str
    slug: str
    description: str
    tech_stack: List[str] = []
    image: str = ""
    video: str = ""
    live_link: str = ""
    repo_link: str = ""
    tags: List[str] = []
    featured: bool = False

    @field_validator("slug")
    @classmethod
    def _lower_slug(cls, value: str) -> str:
        return value.strip().lower()


class Certification(BaseModel):
    title: str
    provider: str
    issue_date: datetime
    credential_id: str = ""
    credential_url: str = ""
    badge_image: str = ""


class SocialLink(BaseModel):
    platform: str
    url: str
    icon: str = ""


class Testimonial(BaseModel):
    name: str
    role: str
    content: str
    image: str = ""
    linked_in: str = ""
