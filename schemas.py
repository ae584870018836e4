"""
Database Schemas

Pydantic models defining MongoDB collections. Class name lowercased is the collection name.
References to other documents are stored as string ids.
"""
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime


class SocialLinks(BaseModel):
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    website: Optional[str] = None


# User accounts
class User(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password_hash: str = Field(..., description="BCrypt hashed password")
    avatar: Optional[str] = None
    is_admin: bool = False
    liked: List[str] = Field(default_factory=list, description="Festival ids")
    going_to: List[str] = Field(default_factory=list, description="Festival ids")
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    last_login: Optional[datetime] = None


class Coordinates(BaseModel):
    lat: float
    lng: float


class Location(BaseModel):
    city: str
    country: str
    coordinates: Optional[Coordinates] = None


class FestivalData(BaseModel):
    """Editable part of a festival, sent as the `festival_data` form field."""
    name: str = Field(..., min_length=1)
    description: str
    location: Location
    start_date: datetime
    end_date: datetime
    genre: str
    price: float = Field(..., ge=0)
    is_free: bool = False
    website: Optional[str] = None
    social_links: Optional[SocialLinks] = None
    image_url: Optional[str] = None
    lineup: List[str] = Field(default_factory=list)


class Festival(FestivalData):
    created_by: str
    approved: bool = False
    likes: int = 0
    going_to: int = 0


class Voter(BaseModel):
    user_id: str
    vote: Literal["up", "down"]


# Festival-scoped discussion node
class Comment(BaseModel):
    user_id: str
    festival_id: str
    content: str = Field(..., min_length=1)
    parent_comment: Optional[str] = Field(None, description="Id of the comment this replies to")
    upvotes: int = 0
    downvotes: int = 0
    voters: List[Voter] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_edited: bool = False
    is_deleted: bool = False


# Forum-wide discussion node
class Topic(Comment):
    title: Optional[str] = None
    views: int = 0
    is_pinned: bool = False


class Notification(BaseModel):
    user_id: str
    message: str
    link: Optional[str] = None
    read: bool = False
