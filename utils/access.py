"""Directory lookups and permission checks.

Stands in for the identity and student-directory services: callers are
teacher ids, and every check answers one question ("is this caller the class
admin", "is this caller the current teacher of the subject") against the
authoritative tables, never against exam or mark copies.
"""

import logging

from models import (
    AssignedSubject,
    ClassRoom,
    ClassTeacher,
    Student,
    SubjectAssignment,
    Teacher,
    db,
)
from utils.errors import (
    NotFound,
    StudentNotInClass,
    SubjectNotAssignedToCaller,
    Unauthorized,
)

logger = logging.getLogger(__name__)


def get_class(class_id: int) -> ClassRoom:
    class_obj = db.session.get(ClassRoom, class_id)
    if class_obj is None:
        raise NotFound("Class not found", class_id=class_id)
    return class_obj


def get_teacher(teacher_id: int) -> Teacher:
    teacher = db.session.get(Teacher, teacher_id)
    if teacher is None:
        raise NotFound("Teacher not found", teacher_id=teacher_id)
    return teacher


def is_class_teacher(teacher_id: int, class_id: int) -> bool:
    return (
        ClassTeacher.query.filter_by(class_id=class_id, teacher_id=teacher_id).first()
        is not None
    )


def verify_class_admin(caller_id: int, class_id: int) -> ClassRoom:
    """Return the class if caller is its admin, else raise Unauthorized."""
    get_teacher(caller_id)
    class_obj = get_class(class_id)
    if class_obj.class_admin_id != caller_id:
        logger.warning(
            f"Teacher {caller_id} denied class-admin access to class {class_id}"
        )
        raise Unauthorized(
            "Not authorized as class admin for this class", class_id=class_id
        )
    return class_obj


def verify_class_teacher(caller_id: int, class_id: int) -> ClassRoom:
    """Class admin or any teacher attached to the class."""
    get_teacher(caller_id)
    class_obj = get_class(class_id)
    if class_obj.class_admin_id == caller_id or is_class_teacher(caller_id, class_id):
        return class_obj
    logger.warning(f"Teacher {caller_id} denied access to class {class_id}")
    raise Unauthorized("Not authorized to access this class", class_id=class_id)


def get_class_teachers(class_id: int, caller_id: int) -> dict:
    """Teachers attached to the class from its own school. Class admin only."""
    class_obj = verify_class_admin(caller_id, class_id)
    teachers = (
        Teacher.query.join(ClassTeacher, ClassTeacher.teacher_id == Teacher.id)
        .filter(
            ClassTeacher.class_id == class_id,
            Teacher.school_id == class_obj.school_id,
        )
        .order_by(Teacher.name, Teacher.id)
        .all()
    )
    return {
        "teachers": [
            {"id": t.id, "name": t.name, "email": t.email, "status": t.status}
            for t in teachers
        ],
        "class_info": {
            "id": class_obj.id,
            "name": class_obj.name,
            "section": class_obj.section,
        },
    }


def canonical_subject(class_id: int, subject_id: int) -> AssignedSubject | None:
    return (
        AssignedSubject.query.join(SubjectAssignment)
        .filter(
            SubjectAssignment.class_id == class_id,
            AssignedSubject.id == subject_id,
        )
        .first()
    )


def verify_subject_teacher(
    caller_id: int, class_id: int, subject_id: int
) -> AssignedSubject:
    """Raise unless the assignment store names caller as the subject's teacher."""
    subject = canonical_subject(class_id, subject_id)
    if subject is None or subject.teacher_id is None or subject.teacher_id != caller_id:
        logger.warning(
            f"Teacher {caller_id} is not the assigned teacher of subject {subject_id} in class {class_id}"
        )
        raise SubjectNotAssignedToCaller(
            "Not authorized to score this subject",
            class_id=class_id,
            subject_id=subject_id,
        )
    return subject


def active_students(class_id: int) -> list[Student]:
    return (
        Student.query.filter_by(class_id=class_id, is_active=True)
        .order_by(Student.name, Student.id)
        .all()
    )


def get_active_student(class_id: int, student_id: int) -> Student:
    student = Student.query.filter_by(
        id=student_id, class_id=class_id, is_active=True
    ).first()
    if student is None:
        raise StudentNotInClass(
            "Student is not an active member of this class",
            class_id=class_id,
            student_id=student_id,
        )
    return student
