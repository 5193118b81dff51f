from uuid import uuid4

from beanie import Document, Indexed
from pydantic import Field


class Department(Document):
    """Academic department (CSE, ECE, MBA...). Static reference data."""
    id: str = Field(default_factory=lambda: uuid4().hex)
    name: Indexed(str)

    class Settings:
        name = "departments"
