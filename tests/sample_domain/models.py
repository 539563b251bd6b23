"""Sample entities used across the test suite."""

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Set

from sqlalchemy import Boolean, Column, Date, Enum, ForeignKey, Integer, Numeric, String, Table, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Status(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class Timestamped:
    created_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


task_tags = Table(
    "task_tags",
    Base.metadata,
    Column("task_id", ForeignKey("tasks.id"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    tasks: Mapped[List["Task"]] = relationship(back_populates="owner")

    @property
    def display_name(self) -> str:
        return f"{self.name} <{self.email}>"


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    label: Mapped[str] = mapped_column(String(50))
    tasks: Mapped[Set["Task"]] = relationship(secondary=task_tags, back_populates="tags")


class Task(Timestamped, Base):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Status] = mapped_column(Enum(Status), default=Status.ACTIVE)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    done: Mapped[bool] = mapped_column(Boolean, default=False)
    estimate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    owner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    owner: Mapped[Optional[User]] = relationship(back_populates="tasks")
    tags: Mapped[Set[Tag]] = relationship(secondary=task_tags, back_populates="tasks")


class Note(Base):
    """Owned by a user through the default ``user_id`` column."""

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    body: Mapped[str] = mapped_column(String(200))
    user_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)


class Bookmark(Base):
    """Owned through a custom owner column."""

    __tablename__ = "bookmarks"
    __user_id_field__ = "account_id"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    url: Mapped[str] = mapped_column(String(200))
    account_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)


# Plain (unmapped) entities for engine tests that need no database.


@dataclass(eq=False)
class Person:
    id: int
    name: str
    friend: Optional["Person"] = None


@dataclass(eq=False)
class Label:
    id: int
    text: str


@dataclass(eq=False)
class Ticket:
    id: int
    number: str
    labels: List[Label] = field(default_factory=list)
