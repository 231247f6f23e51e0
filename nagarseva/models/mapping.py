from __future__ import annotations

from pydantic import BaseModel

from nagarseva.models.enums import MappingStatus


class DepartmentMapping(BaseModel):
    """One row of the category x city -> department table.

    Rows are edited out-of-band by administrators; the resolver only reads
    them.  Stored documents use ``higher_authority`` as the field name.
    """

    model_config = {"populate_by_name": True, "extra": "ignore"}

    mapping_id: str | None = None
    category: str
    city: str
    department: str
    higher_authority: str = ""
    status: str = MappingStatus.ACTIVE
    pincode: str | None = None


class MatchedCriteria(BaseModel):
    model_config = {"frozen": True}

    category: str
    city: str


class DepartmentMappingResult(BaseModel):
    """Resolver output.

    ``matched_criteria.city`` is the city of the row that matched, which
    differs from the complaint's city after a category-only match.
    """

    model_config = {"frozen": True}

    department: str
    higher_authority: str
    status: str = MappingStatus.ACTIVE
    is_default: bool
    matched_criteria: MatchedCriteria
