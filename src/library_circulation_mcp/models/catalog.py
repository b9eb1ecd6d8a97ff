"""
Catalog, directory and branch models.

Circulation reads books and members but does not own their lifecycle;
these models exist for seeding, responses and resources.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BranchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str | None = Field(default=None, max_length=20)


class Branch(BranchCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime | None = None


class BookCreate(BaseModel):
    """Payload for adding a title to the catalog."""

    isbn: str | None = Field(
        default=None,
        max_length=32,
        description="ISBN as printed; hyphens and spaces are allowed",
        examples=["978-0-306-40615-7", "9780306406157"],
    )
    title: str = Field(..., min_length=1, max_length=500)
    author: str | None = Field(default=None, max_length=200)
    copies: int = Field(default=1, ge=1, description="Physical copies of this title")
    available: int | None = Field(
        default=None,
        ge=0,
        description="Copies on the shelf; defaults to all copies",
    )
    branch_id: int | None = None

    @model_validator(mode="after")
    def default_available(self) -> "BookCreate":
        if self.available is None:
            self.available = self.copies
        if self.available > self.copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self


class Book(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    isbn: str | None = None
    title: str
    author: str | None = None
    copies: int
    available: int | None = None
    branch_id: int | None = None


class MemberCreate(BaseModel):
    student_no: str | None = Field(default=None, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    grade: str | None = Field(default=None, max_length=50)
    phone: str | None = Field(default=None, max_length=50)
    email: str | None = Field(default=None, max_length=255)
    is_blocked: bool = False
    note: str | None = None
    branch_id: int | None = None


class Member(MemberCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
