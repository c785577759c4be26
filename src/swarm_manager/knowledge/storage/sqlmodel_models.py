"""SQLModel ORM tables for the knowledge store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Text
from sqlmodel import Field, SQLModel


class ProjectRow(SQLModel, table=True):
    __tablename__ = "projects"  # type: ignore[bad-override]

    project_id: str = Field(primary_key=True)
    name: str
    description: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    status: str = Field(default="active", index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class NoteRow(SQLModel, table=True):
    __tablename__ = "notes"  # type: ignore[bad-override]

    note_id: str = Field(primary_key=True)
    title: str
    body: str = Field(sa_column=Column(Text, nullable=False))
    project_id: str = Field(
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    tags_json: str = Field(default="[]", sa_column=Column(Text, nullable=False, default="[]"))
    priority: str = Field(default="medium")
    status: str = Field(default="pending", index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentProfileRow(SQLModel, table=True):
    __tablename__ = "agent_profiles"  # type: ignore[bad-override]

    agent_id: str = Field(primary_key=True)
    agent_type: str = Field(default="llm")
    capabilities_json: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False, default="[]"),
    )
    command_template: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    instructions: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
