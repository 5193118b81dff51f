"""Departments, classes and students for the entry form and filters."""
from typing import Optional

from fastapi import APIRouter, Query

from app.api.deps import Reference

router = APIRouter()


@router.get("/departments")
async def list_departments(reference: Reference):
    return [d.model_dump() for d in sorted(reference.departments, key=lambda d: d.name.casefold())]


@router.get("/classes")
async def list_classes(reference: Reference, department_id: Optional[str] = None):
    """Classes, optionally only those of one department."""
    classes = reference.classes
    if department_id and department_id != "all":
        classes = [c for c in classes if c.department_id == department_id]
    return [c.model_dump() for c in sorted(classes, key=lambda c: c.name.casefold())]


@router.get("/students")
async def list_students(
    reference: Reference,
    department_id: Optional[str] = None,
    class_id: Optional[str] = None,
    q: Optional[str] = Query(None, description="Search by name or register number"),
):
    students = reference.students
    if department_id and department_id != "all":
        students = [s for s in students if s.department_id == department_id]
    if class_id and class_id != "all":
        students = [s for s in students if s.class_id == class_id]
    if q and q.strip():
        search = q.strip().casefold()
        students = [
            s for s in students
            if search in s.name.casefold() or search in s.register_no.casefold()
        ]
    return [s.model_dump() for s in sorted(students, key=lambda s: s.name.casefold())]
