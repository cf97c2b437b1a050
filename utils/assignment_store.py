"""Assignment store: per-class subject list and the canonical teacher of each subject.

Functions here only touch the SubjectAssignment tables. Keeping exam and mark
copies in step after a teacher change is the job of utils.propagation.
"""

import logging
import math
import random
import re

from models import AssignedSubject, SubjectAssignment, db
from utils.access import get_teacher, is_class_teacher, verify_class_admin
from utils.db_conn import commit_session
from utils.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

MIN_CREDITS = 0
MAX_CREDITS = 10
CODE_ATTEMPTS = 50


def find_subject_assignment(class_id: int) -> SubjectAssignment | None:
    return SubjectAssignment.query.filter_by(class_id=class_id).first()


def get_subject_assignment(class_id: int) -> SubjectAssignment:
    assignment = find_subject_assignment(class_id)
    if assignment is None:
        raise NotFound("No subjects found for this class", class_id=class_id)
    return assignment


def get_subject(class_id: int, subject_id: int) -> AssignedSubject:
    subject = get_subject_assignment(class_id).find_subject(subject_id)
    if subject is None:
        raise NotFound("Subject not found", class_id=class_id, subject_id=subject_id)
    return subject


def canonical_teacher_map(class_id: int) -> dict:
    """subject_id -> teacher_id (or None) as the assignment store has it now."""
    assignment = find_subject_assignment(class_id)
    if assignment is None:
        return {}
    return {subject.id: subject.teacher_id for subject in assignment.subjects}


def initialize_subjects(class_id: int, caller_id: int):
    """Create the class's subject document. Returns (assignment, created)."""
    class_obj = verify_class_admin(caller_id, class_id)
    assignment = find_subject_assignment(class_id)
    if assignment is not None:
        return assignment, False

    assignment = SubjectAssignment(
        class_id=class_id,
        school_id=class_obj.school_id,
        class_admin_id=class_obj.class_admin_id,
    )
    db.session.add(assignment)
    commit_session("initialize_subjects")
    logger.info(f"Subjects initialized for class {class_id}")
    return assignment, True


def get_subjects_status(class_id: int, caller_id: int) -> dict:
    """Whether the class has a subject document yet, and what it holds."""
    class_obj = verify_class_admin(caller_id, class_id)
    assignment = find_subject_assignment(class_id)
    subjects = [s.to_dict() for s in assignment.subjects] if assignment else []
    return {
        "initialized": assignment is not None,
        "class_info": {
            "id": class_obj.id,
            "name": class_obj.name,
            "section": class_obj.section,
        },
        "subject_count": len(subjects),
        "subjects": subjects,
    }


def _clean_name(value) -> str:
    name = (value or "").strip() if isinstance(value, str) else ""
    if not name:
        raise ValidationError("Subject name is required")
    return name


def _clean_code(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Subject code must be a string")
    code = value.strip().upper()
    return code or None


def _clean_credits(value) -> int:
    if value is None:
        return 1
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Credits must be a number")
    if not math.isfinite(value):
        raise ValidationError("Credits must be a finite number")
    if value != int(value) or not MIN_CREDITS <= value <= MAX_CREDITS:
        raise ValidationError(
            f"Credits must be a whole number between {MIN_CREDITS} and {MAX_CREDITS}"
        )
    return int(value)


def _name_taken(assignment, name, exclude_id=None) -> bool:
    lowered = name.lower()
    return any(
        s.id != exclude_id and s.name.lower() == lowered for s in assignment.subjects
    )


def _code_taken(assignment, code, exclude_id=None) -> bool:
    return any(
        s.id != exclude_id and s.code.upper() == code for s in assignment.subjects
    )


def generate_subject_code(assignment: SubjectAssignment, name: str) -> str:
    """First four letters of the name plus a two digit number, unique in the class."""
    prefix = re.sub(r"[^a-zA-Z]", "", name)[:4].upper() or "SUBJ"
    for _ in range(CODE_ATTEMPTS):
        code = f"{prefix}{random.randint(1, 99):02d}"
        if not _code_taken(assignment, code):
            return code
    raise ValidationError(f"Could not generate a unique code for subject '{name}'")


def add_subject(class_id: int, data: dict, caller_id: int) -> AssignedSubject:
    """Append a subject to the class; creates the subject document if needed."""
    name = _clean_name(data.get("name"))
    code = _clean_code(data.get("code"))
    credits = _clean_credits(data.get("credits"))

    assignment, _ = initialize_subjects(class_id, caller_id)

    if _name_taken(assignment, name):
        raise ValidationError(
            "Subject with this name already exists in this class", name=name
        )
    if code and _code_taken(assignment, code):
        raise ValidationError(
            "Subject with this code already exists in this class", code=code
        )
    if not code:
        code = generate_subject_code(assignment, name)

    subject = AssignedSubject(
        name=name,
        code=code,
        description=(data.get("description") or "").strip(),
        credits=credits,
        is_active=bool(data.get("is_active", True)),
    )
    assignment.subjects.append(subject)
    commit_session("add_subject")
    logger.info(f"Subject {subject.code} ({subject.id}) added to class {class_id}")
    return subject


def update_subject(class_id: int, subject_id: int, data: dict, caller_id: int):
    """Edit name/code/description/credits/is_active. Returns (subject, old_name)."""
    verify_class_admin(caller_id, class_id)
    assignment = get_subject_assignment(class_id)
    subject = assignment.find_subject(subject_id)
    if subject is None:
        raise NotFound("Subject not found", class_id=class_id, subject_id=subject_id)

    # Validate everything before touching the row
    changes = {}
    if data.get("name") is not None:
        name = _clean_name(data["name"])
        if _name_taken(assignment, name, exclude_id=subject.id):
            raise ValidationError("Subject name already exists in this class", name=name)
        changes["name"] = name
    if data.get("code"):
        code = _clean_code(data["code"])
        if _code_taken(assignment, code, exclude_id=subject.id):
            raise ValidationError("Subject code already exists in this class", code=code)
        changes["code"] = code
    if data.get("description") is not None:
        changes["description"] = str(data["description"]).strip()
    if data.get("credits") is not None:
        changes["credits"] = _clean_credits(data["credits"])
    if data.get("is_active") is not None:
        changes["is_active"] = bool(data["is_active"])

    old_name = subject.name
    for field, value in changes.items():
        setattr(subject, field, value)

    commit_session("update_subject")
    logger.info(f"Subject {subject_id} updated in class {class_id}")
    return subject, old_name


def remove_subject(class_id: int, subject_id: int, caller_id: int) -> dict:
    """Delete the subject entry. Exams and mark records keep their history."""
    verify_class_admin(caller_id, class_id)
    assignment = get_subject_assignment(class_id)
    subject = assignment.find_subject(subject_id)
    if subject is None:
        raise NotFound("Subject not found", class_id=class_id, subject_id=subject_id)

    subject_name = subject.name
    assignment.subjects.remove(subject)
    commit_session("remove_subject")
    logger.info(f"Subject {subject_id} removed from class {class_id}")
    return {
        "deleted_subject_id": subject_id,
        "subject_name": subject_name,
        "remaining_subjects": len(assignment.subjects),
    }


def assign_teacher(class_id: int, subject_id: int, teacher_id: int, caller_id: int):
    """Set the canonical teacher. Returns (subject, previous_teacher_id)."""
    if teacher_id is None:
        raise ValidationError("Teacher ID is required")
    class_obj = verify_class_admin(caller_id, class_id)
    subject = get_subject(class_id, subject_id)

    teacher = get_teacher(teacher_id)
    if teacher.school_id != class_obj.school_id:
        raise NotFound("Teacher not found or not from same school", teacher_id=teacher_id)
    if teacher_id != class_obj.class_admin_id and not is_class_teacher(
        teacher_id, class_id
    ):
        raise ValidationError(
            "Teacher must be assigned to this class first", teacher_id=teacher_id
        )

    previous = subject.teacher_id
    subject.teacher_id = teacher_id
    commit_session("assign_teacher")
    logger.info(
        f"Subject {subject_id} in class {class_id} assigned to teacher {teacher_id} (was {previous})"
    )
    return subject, previous


def remove_teacher(class_id: int, subject_id: int, caller_id: int):
    """Clear the canonical teacher. Returns (subject, previous_teacher_id)."""
    verify_class_admin(caller_id, class_id)
    subject = get_subject(class_id, subject_id)
    if subject.teacher_id is None:
        raise ValidationError(
            "No teacher assigned to this subject", subject_id=subject_id
        )

    previous = subject.teacher_id
    subject.teacher_id = None
    commit_session("remove_teacher")
    logger.info(
        f"Teacher {previous} removed from subject {subject_id} in class {class_id}"
    )
    return subject, previous


def get_subjects_by_teacher(teacher_id: int) -> list[dict]:
    """Active subjects canonically assigned to a teacher, across classes."""
    rows = (
        AssignedSubject.query.join(SubjectAssignment)
        .filter(
            AssignedSubject.teacher_id == teacher_id,
            AssignedSubject.is_active.is_(True),
        )
        .order_by(SubjectAssignment.class_id, AssignedSubject.id)
        .all()
    )
    subjects = []
    for subject in rows:
        entry = subject.to_dict()
        entry["class_id"] = subject.assignment.class_id
        entry["class_admin_id"] = subject.assignment.class_admin_id
        subjects.append(entry)
    return subjects
