"""Pytest configuration and shared fixtures."""
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from worksign.database import Base
# Import models to register them with SQLAlchemy Base
from worksign.models.audit import TicketHistory
from worksign.models.directory import Team, TeamMembership, User
from worksign.models.domain import ProgressEntry, ShareLink, Ticket
from worksign.models.enums import Role
from worksign.services.directory import AuthorRef, TeamRef
from worksign.services.share_links import LinkIssuer
from worksign.services.signatures import SignatureAcceptor
from worksign.services.state_machine import TicketStateMachine

TEAM_A = TeamRef(id="team_a", name="Trench Crew A", email="crew-a@example.com")
TEAM_B = TeamRef(id="team_b", name="Cabling Crew B", email="crew-b@example.com")
ALICE = AuthorRef(id="user_alice", name="Alice Moreno", email="alice@example.com")


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    # One shared connection so TestClient worker threads see the same data
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def directory(db_session):
    """Two teams, one admin and one member in each team."""
    db_session.add_all([
        Team(id=TEAM_A.id, name=TEAM_A.name, email=TEAM_A.email),
        Team(id=TEAM_B.id, name=TEAM_B.name, email=TEAM_B.email),
        User(id="admin_1", name="Administrator A", email="admin@example.com", role=Role.ADMIN),
        User(id=ALICE.id, name=ALICE.name, email=ALICE.email, role=Role.FIELD_TEAM),
        User(id="user_bob", name="Bob Okafor", email="bob@example.com", role=Role.FIELD_TEAM),
    ])
    db_session.flush()
    db_session.add_all([
        TeamMembership(user_id=ALICE.id, team_id=TEAM_A.id),
        TeamMembership(user_id="user_bob", team_id=TEAM_B.id),
    ])
    db_session.commit()


@pytest.fixture
def sample_ticket(db_session, directory):
    """A two-day ticket assigned to team A."""
    sm = TicketStateMachine(db_session)
    return sm.create_ticket(
        name_of_work="Fibre backbone extension",
        department="Public Works",
        field_officer_name="J. Carter",
        contact_no="+15551234567",
        assignment_name="Ward 7 trenching",
        description="Trench and lay conduit along Elm Street",
        date_of_commencement=datetime(2026, 3, 2),
        number_of_working_days=2,
        created_by="admin_1",
        created_by_name="Administrator A",
        team=TEAM_A,
    )


@pytest.fixture
def sign_entry(db_session):
    """Issue a link for a progress entry and sign through it."""
    def _sign(ticket_id, progress_id, signature="J. Carter"):
        link = LinkIssuer(db_session).issue_link(ticket_id, progress_id)
        SignatureAcceptor(db_session).submit_signature(link.token, signature, "text")
        return link.token
    return _sign
