"""
Club provisioning - turns an approved request into a live club.

Runs inside the approving transition's transaction. It only flushes; the
caller commits or rolls back, so a failure at any step leaves no partial club.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.domain import (
    AcademicTerm,
    Club,
    ClubMembership,
    ClubRequest,
    ClubRole,
    RoleAssignment,
)
from app.models.enums import ClubStatus, MembershipStatus
from app.services.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

TermResolver = Callable[[Session], Optional[AcademicTerm]]


class RoleDefinition(NamedTuple):
    code: str
    name: str
    description: str
    level: int
    system_role: Optional[str]


PRESIDENT_ROLE_CODE = "CLUB_PRESIDENT"

DEFAULT_ROLE_CATALOGUE = (
    RoleDefinition(PRESIDENT_ROLE_CODE, "President",
                   "Heads the club and manages all of its activities.", 1, "CLUB_OFFICER"),
    RoleDefinition("CLUB_VICE_PRESIDENT", "Vice President",
                   "Assists the president.", 2, "CLUB_OFFICER"),
    RoleDefinition("CLUB_TEAM_HEAD", "Team Head",
                   "Leads one of the club's teams.", 3, "TEAM_OFFICER"),
    RoleDefinition("CLUB_TEAM_DEPUTY", "Team Deputy",
                   "Assists a team head.", 4, "TEAM_OFFICER"),
    RoleDefinition("CLUB_TREASURER", "Treasurer",
                   "Manages the club's finances.", 5, "CLUB_TREASURER"),
    RoleDefinition("CLUB_MEMBER", "Member",
                   "General club member.", 6, "MEMBER"),
)


def current_academic_term(db: Session) -> Optional[AcademicTerm]:
    """Default term resolver: the term flagged as current."""
    return db.query(AcademicTerm).filter(
        AcademicTerm.is_current.is_(True)
    ).order_by(AcademicTerm.start_date.desc()).first()


def name_key(name: str) -> str:
    return name.strip().casefold()


def club_name_taken(db: Session, name: Optional[str]) -> bool:
    if not name:
        return False
    return db.query(Club.id).filter(Club.name_key == name_key(name)).first() is not None


def club_code_taken(db: Session, code: Optional[str]) -> bool:
    if not code:
        return False
    return db.query(Club.id).filter(func.lower(Club.code) == code.strip().lower()).first() is not None


@dataclass
class ProvisionedClub:
    club: Club
    roles: List[ClubRole]
    founder_membership: ClubMembership
    president_assignment: RoleAssignment


class ClubProvisioner:
    """Creates the club, its default roles, the founder membership and the president assignment."""

    def __init__(
        self,
        db: Session,
        term_resolver: TermResolver = current_academic_term,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.term_resolver = term_resolver
        self.clock = clock

    def provision(self, request: ClubRequest) -> ProvisionedClub:
        # Resolve the term first: a missing term is a configuration fault and
        # must be reported before anything is written.
        term = self.term_resolver(self.db)
        if term is None:
            logger.error(
                "No active academic term while provisioning club for request %s", request.id
            )
            raise ConfigurationError(
                "No academic term is currently active; the founder's role cannot be assigned"
            )

        club = self._create_club(request)
        roles = self._create_default_roles(club)
        president = next(r for r in roles if r.code == PRESIDENT_ROLE_CODE)

        membership = ClubMembership(
            club_id=club.id,
            user_id=request.created_by,
            status=MembershipStatus.ACTIVE,
            join_date=self.clock().date(),
        )
        self.db.add(membership)
        self.db.flush()

        assignment = RoleAssignment(
            membership_id=membership.id,
            club_role_id=president.id,
            term_id=term.id,
            is_active=True,
        )
        self.db.add(assignment)
        self.db.flush()

        logger.info(
            "Provisioned club %s (%s) for request %s; founder %s is president for term %s",
            club.id, club.name, request.id, request.created_by, term.code or term.id,
        )
        return ProvisionedClub(club, roles, membership, assignment)

    def _create_club(self, request: ClubRequest) -> Club:
        # A failed flush expires the request, so keep what the error message needs
        name, code = request.club_name, request.club_code
        if club_name_taken(self.db, name):
            raise ValidationError(f"A club named '{name}' already exists")
        if club_code_taken(self.db, code):
            raise ValidationError(f"Club code '{code}' is already in use")

        club = Club(
            name=name,
            name_key=name_key(name),
            code=code,
            category=request.club_category,
            description=request.description,
            email=request.email,
            phone=request.phone,
            facebook_link=request.facebook_link,
            instagram_link=request.instagram_link,
            tiktok_link=request.tiktok_link,
            status=ClubStatus.ACTIVE,
            request_id=request.id,
            created_at=self.clock(),
        )
        self.db.add(club)
        try:
            self.db.flush()
        except IntegrityError:
            # Another approval committed the same name/code after our check
            raise ValidationError(
                f"A club with name '{name}' or code '{code}' already exists"
            )
        return club

    def _create_default_roles(self, club: Club) -> List[ClubRole]:
        roles = [
            ClubRole(
                club_id=club.id,
                code=definition.code,
                name=definition.name,
                description=definition.description,
                level=definition.level,
                system_role=definition.system_role,
            )
            for definition in DEFAULT_ROLE_CATALOGUE
        ]
        self.db.add_all(roles)
        self.db.flush()
        return roles
