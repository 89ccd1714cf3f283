"""Domain models - the establishment request aggregate and the club it provisions."""
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.database import Base, utcnow
from app.models.enums import ClubStatus, DefenseResult, MembershipStatus, RequestStatus


class ClubRequest(Base):
    """
    A request to establish a club, owned by the student who created it.

    Invariants enforced here:
    - status is always one of the enumerated RequestStatus values
    - created_by never changes after creation
    - version_id is bumped on every write, so two writers starting from the
      same row version cannot both commit
    """
    __tablename__ = "club_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Descriptive fields (nullable while DRAFT)
    club_name = Column(String(100), nullable=True)
    club_category = Column(String(100), nullable=True)
    club_code = Column(String(50), nullable=True)
    expected_member_count = Column(Integer, nullable=True)
    activity_objectives = Column(Text, nullable=True)
    expected_activities = Column(Text, nullable=True)
    description = Column(Text, nullable=True)

    # Contact channels
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    facebook_link = Column(String(255), nullable=True)
    instagram_link = Column(String(255), nullable=True)
    tiktok_link = Column(String(255), nullable=True)

    status = Column(SQLEnum(RequestStatus), nullable=False, default=RequestStatus.DRAFT, index=True)

    created_by = Column(String, nullable=False, index=True)
    assigned_reviewer_id = Column(String, nullable=True, index=True)

    # History markers, each set once by the transition that produces it
    submitted_at = Column(DateTime, nullable=True)
    received_at = Column(DateTime, nullable=True)
    confirmation_deadline = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version_id = Column(Integer, nullable=False)

    proposals = relationship(
        "ProposalDocument", back_populates="request", cascade="all, delete-orphan",
        order_by="ProposalDocument.sequence",
    )
    final_forms = relationship(
        "FinalFormDocument", back_populates="request", cascade="all, delete-orphan",
        order_by="FinalFormDocument.sequence",
    )
    defense_schedule = relationship(
        "DefenseSchedule", back_populates="request", uselist=False, cascade="all, delete-orphan"
    )
    audit_entries = relationship(
        "WorkflowAuditEntry", back_populates="request", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version_id}


class ProposalDocument(Base):
    """
    One immutable version of the club proposal.

    Invariants:
    - Never edited after insert; resubmission inserts a new row
    - (request_id, sequence) is unique
    """
    __tablename__ = "proposal_documents"
    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_proposal_request_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("club_requests.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    document_url = Column(String(500), nullable=False)
    submitted_by = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    request = relationship("ClubRequest", back_populates="proposals")


class FinalFormDocument(Base):
    """One immutable version of the final paperwork. Same invariants as ProposalDocument."""
    __tablename__ = "final_form_documents"
    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_final_form_request_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("club_requests.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    document_url = Column(String(500), nullable=False)
    submitted_by = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    request = relationship("ClubRequest", back_populates="final_forms")


class DefenseSchedule(Base):
    """
    The single defense slot of a request.

    Invariants:
    - At most one row per request (request_id is unique)
    - ends_at is strictly after starts_at
    - While result is CONFIRMED, starts_at/ends_at/location are locked
    """
    __tablename__ = "defense_schedules"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("club_requests.id"), nullable=False, unique=True)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    location = Column(String(500), nullable=True)
    meeting_link = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    result = Column(SQLEnum(DefenseResult), nullable=True)
    feedback = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    request = relationship("ClubRequest", back_populates="defense_schedule")

    @property
    def is_locked(self) -> bool:
        return self.result == DefenseResult.CONFIRMED


class AcademicTerm(Base):
    """An institution scheduling period. Exactly one should be flagged current."""
    __tablename__ = "academic_terms"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=True, unique=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)


class Club(Base):
    """
    An established club.

    name_key is the case-folded name; the unique index on it (and on code)
    backs the check-then-create done during provisioning.
    """
    __tablename__ = "clubs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    name_key = Column(String(100), nullable=False, unique=True)
    code = Column(String(50), nullable=True, unique=True)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    facebook_link = Column(String(255), nullable=True)
    instagram_link = Column(String(255), nullable=True)
    tiktok_link = Column(String(255), nullable=True)
    status = Column(SQLEnum(ClubStatus), nullable=False, default=ClubStatus.ACTIVE)
    request_id = Column(Integer, ForeignKey("club_requests.id"), nullable=True, unique=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    roles = relationship("ClubRole", back_populates="club", cascade="all, delete-orphan")
    memberships = relationship("ClubMembership", back_populates="club", cascade="all, delete-orphan")


class ClubRole(Base):
    __tablename__ = "club_roles"
    __table_args__ = (
        UniqueConstraint("club_id", "code", name="uq_club_role_code"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id"), nullable=False)
    code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    level = Column(Integer, nullable=False)
    system_role = Column(String(50), nullable=True)  # system-wide role category, optional

    club = relationship("Club", back_populates="roles")


class ClubMembership(Base):
    __tablename__ = "club_memberships"
    __table_args__ = (
        UniqueConstraint("club_id", "user_id", name="uq_club_membership_user"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id"), nullable=False)
    user_id = Column(String, nullable=False, index=True)
    status = Column(SQLEnum(MembershipStatus), nullable=False, default=MembershipStatus.ACTIVE)
    join_date = Column(Date, nullable=False)

    club = relationship("Club", back_populates="memberships")
    role_assignments = relationship("RoleAssignment", back_populates="membership", cascade="all, delete-orphan")


class RoleAssignment(Base):
    """Binds a membership to a club role for one academic term."""
    __tablename__ = "role_assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    membership_id = Column(Integer, ForeignKey("club_memberships.id"), nullable=False)
    club_role_id = Column(Integer, ForeignKey("club_roles.id"), nullable=False)
    term_id = Column(Integer, ForeignKey("academic_terms.id"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    membership = relationship("ClubMembership", back_populates="role_assignments")
    club_role = relationship("ClubRole")
    term = relationship("AcademicTerm")
