"""Read-only lookups against the team/user directory."""
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from worksign.models.directory import Team, TeamMembership, User
from worksign.models.enums import Role
from worksign.services.errors import NotFoundError


@dataclass(frozen=True)
class Actor:
    """
    A verified caller, as carried by the identity credential.

    team_id is set when a whole team logged in with a shared credential
    rather than an individual member.
    """
    subject_id: str
    role: Role
    team_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class TeamRef:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class AuthorRef:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class Directory:
    def __init__(self, db: Session):
        self.db = db

    def get_team(self, team_id: str) -> Optional[Team]:
        return self.db.query(Team).filter(Team.id == team_id).first()

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def require_team(self, team_id: str) -> TeamRef:
        team = self.get_team(team_id)
        if not team:
            raise NotFoundError("Team not found")
        return TeamRef(id=team.id, name=team.name, email=team.email)

    def team_ids_for(self, actor: Actor) -> List[str]:
        """Teams the actor acts for: the logged-in team, or every team the user belongs to."""
        if actor.team_id:
            return [actor.team_id]
        rows = (
            self.db.query(TeamMembership.team_id)
            .filter(TeamMembership.user_id == actor.subject_id)
            .order_by(TeamMembership.team_id)
            .all()
        )
        return [team_id for (team_id,) in rows]

    def is_member(self, actor: Actor, team_id: Optional[str]) -> bool:
        if not team_id:
            return False
        return team_id in self.team_ids_for(actor)

    def author_for(self, actor: Actor) -> Optional[AuthorRef]:
        """The human behind an action, if the credential names one."""
        if actor.team_id:
            return None
        user = self.get_user(actor.subject_id)
        if not user:
            return AuthorRef(id=actor.subject_id)
        return AuthorRef(id=user.id, name=user.name, email=user.email)

    def display_name(self, actor: Actor) -> str:
        if actor.team_id:
            team = self.get_team(actor.team_id)
            return team.name if team else "Team"
        user = self.get_user(actor.subject_id)
        if user:
            return user.name
        return "Admin" if actor.is_admin else "User"
