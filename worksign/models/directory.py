"""
Team and user directory tables.

These are owned by the account-management side of the product; worksign only
reads them to resolve display names and team membership.
"""
from sqlalchemy import Column, String, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from worksign.database import Base
from worksign.models.enums import Role


class Team(Base):
    __tablename__ = "teams"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)

    memberships = relationship("TeamMembership", back_populates="team", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(SQLEnum(Role), nullable=False, default=Role.FIELD_TEAM)

    memberships = relationship("TeamMembership", back_populates="user", cascade="all, delete-orphan")


class TeamMembership(Base):
    __tablename__ = "team_memberships"

    user_id = Column(String, ForeignKey("users.id"), primary_key=True)
    team_id = Column(String, ForeignKey("teams.id"), primary_key=True)

    user = relationship("User", back_populates="memberships")
    team = relationship("Team", back_populates="memberships")
