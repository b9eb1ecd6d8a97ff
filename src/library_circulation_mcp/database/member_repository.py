"""Member repository: directory reads used by circulation."""

from sqlalchemy import select

from ..circulation.keys import normalize_key, normalized_column
from ..errors import InvalidInputError
from ..models import Member, MemberCreate
from .repository import BaseRepository
from .schema import Member as MemberDB
from .session import mcp_safe_query


class MemberRepository(BaseRepository[MemberDB, MemberCreate, Member]):
    @property
    def model_class(self) -> type[MemberDB]:
        return MemberDB

    @property
    def response_schema(self) -> type[Member]:
        return Member

    def find_by_student_no(self, student_no: str) -> MemberDB | None:
        """
        Resolve a student number, trimmed first and then normalized.

        Raises:
            InvalidInputError: If the normalized number matches several members
        """
        raw = student_no.strip()
        normalized = normalize_key(raw)
        if not normalized:
            return None

        for condition in (
            MemberDB.student_no == raw,
            normalized_column(MemberDB.student_no) == normalized,
        ):
            query = select(MemberDB).where(condition).order_by(MemberDB.id).limit(2)
            members = mcp_safe_query(
                self.session,
                lambda s, q=query: s.execute(q).scalars().all(),
                "Failed to look up member by student number",
            )
            if len(members) > 1:
                raise InvalidInputError(
                    f"Student number {raw!r} matches more than one member",
                    code="ambiguous_student_no",
                    details={"student_no": raw, "member_ids": [m.id for m in members]},
                )
            if members:
                return members[0]
        return None
