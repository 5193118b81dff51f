"""Student reference data: department/class placement, parent contact, mentor."""
from enum import Enum
from typing import Optional
from uuid import uuid4

from beanie import Document, Indexed
from pydantic import Field


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class Student(Document):
    """Student document. department_id is a denormalized copy of the class's department."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: Indexed(str)
    department_id: Indexed(str)
    class_id: Indexed(str)
    register_no: str = ""
    gender: Optional[Gender] = None
    parent_phone_number: Optional[str] = None
    mentor: Optional[str] = None

    class Settings:
        name = "students"
