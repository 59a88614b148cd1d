from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel
from sqlmodel import SQLModel, Field, Column, String


class Restaurant(SQLModel, table=True):
    __tablename__ = "restaurants"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True, nullable=False)
    name: str = Field(sa_column=Column(String, nullable=False))
    owner_id: str = Field(sa_column=Column(String, nullable=False, index=True))  # Supabase user id
    email: Optional[str] = Field(default=None, sa_column=Column(String))


class RestaurantCreate(BaseModel):
    name: str
    email: str | None = None

class RestaurantOut(RestaurantCreate):
    id: UUID
    owner_id: str

    class Config:
        from_attributes = True
