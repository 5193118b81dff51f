from uuid import uuid4

from beanie import Document, Indexed
from pydantic import Field


class SchoolClass(Document):
    """Class/section within a department (e.g. II-A, III, I)."""
    id: str = Field(default_factory=lambda: uuid4().hex)
    department_id: Indexed(str)
    name: str

    class Settings:
        name = "classes"
