"""
User models for the users table.
Pydantic models that match the database schema.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class User(BaseModel):
    """A row of the users table."""

    id: UUID = Field(..., description="Client-generated UUIDv4")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Unique email address")
    role: str = Field(..., description="Role label, e.g. 'User' or 'Admin'")
    created_at: datetime = Field(..., description="Server-assigned creation time")

    def describe(self) -> str:
        return (
            f"ID: {self.id}, Name: {self.name}, Email: {self.email}, "
            f"Role: {self.role}, Created at: {self.created_at.isoformat()}"
        )


class SampleUser(BaseModel):
    """Seed data inserted by a repopulate."""

    name: str
    email: str
    role: str


SAMPLE_USERS: list[SampleUser] = [
    SampleUser(name="John Doe", email="john.doe@example.com", role="Admin"),
    SampleUser(name="Jane Smith", email="jane.smith@example.com", role="User"),
    SampleUser(name="Bob Johnson", email="bob.johnson@example.com", role="User"),
    SampleUser(name="Alice Williams", email="alice.williams@example.com", role="Manager"),
    SampleUser(name="Charlie Brown", email="charlie.brown@example.com", role="User"),
]
