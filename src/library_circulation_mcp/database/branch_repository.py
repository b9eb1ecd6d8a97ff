"""Branch repository."""

from ..models import Branch, BranchCreate
from .repository import BaseRepository
from .schema import Branch as BranchDB


class BranchRepository(BaseRepository[BranchDB, BranchCreate, Branch]):
    @property
    def model_class(self) -> type[BranchDB]:
        return BranchDB

    @property
    def response_schema(self) -> type[Branch]:
        return Branch
