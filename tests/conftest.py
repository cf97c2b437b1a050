import os
import sys
from types import SimpleNamespace

import pytest

# Ensure project root is on sys.path so tests can import app.py
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import create_app  # noqa: E402
from models import ClassRoom, ClassTeacher, Student, Teacher, db  # noqa: E402
from utils import assignment_store, exam_store, propagation  # noqa: E402


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "ENVIRONMENT": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def school(app):
    """One class (10) with an admin, two subject teachers and three students."""
    db.session.add_all(
        [
            Teacher(id=1, school_id=1, name="Asha Admin"),
            Teacher(id=2, school_id=1, name="Tomas One"),
            Teacher(id=3, school_id=1, name="Tara Two"),
            Teacher(id=4, school_id=1, name="Omar Outside"),
            Teacher(id=5, school_id=2, name="Farah Foreign"),
            ClassRoom(id=10, school_id=1, class_admin_id=1, name="Grade 8", section="B"),
            ClassRoom(id=11, school_id=1, class_admin_id=4, name="Grade 9", section="A"),
            ClassTeacher(class_id=10, teacher_id=2),
            ClassTeacher(class_id=10, teacher_id=3),
            Student(id=100, class_id=10, school_id=1, name="Alice", student_number="S-100"),
            Student(id=101, class_id=10, school_id=1, name="Bob", student_number="S-101"),
            Student(
                id=102,
                class_id=10,
                school_id=1,
                name="Cara",
                student_number="S-102",
                is_active=False,
            ),
            Student(id=200, class_id=11, school_id=1, name="Dev", student_number="S-200"),
        ]
    )
    db.session.commit()
    return SimpleNamespace(
        admin_id=1,
        t1_id=2,
        t2_id=3,
        outsider_id=4,
        foreign_id=5,
        class_id=10,
        other_class_id=11,
        alice_id=100,
        bob_id=101,
        inactive_id=102,
        other_student_id=200,
    )


@pytest.fixture
def subjects(school):
    """Math taught by T1, English by T2."""
    math = assignment_store.add_subject(
        school.class_id, {"name": "Math", "code": "math01", "credits": 4}, school.admin_id
    )
    english = assignment_store.add_subject(
        school.class_id, {"name": "English", "code": "ENG01"}, school.admin_id
    )
    propagation.assign_teacher(school.class_id, math.id, school.t1_id, school.admin_id)
    propagation.assign_teacher(school.class_id, english.id, school.t2_id, school.admin_id)
    return SimpleNamespace(math_id=math.id, english_id=english.id)


@pytest.fixture
def exam_payload(subjects):
    """Build a create_exam payload for Math (100) and English (50)."""

    def build(**overrides):
        payload = {
            "exam_name": "Midterm",
            "exam_code": "mid1",
            "exam_date": "2024-03-15T09:00:00",
            "duration": 90,
            "subjects": [
                {"subject_id": subjects.math_id, "full_marks": 100},
                {"subject_id": subjects.english_id, "full_marks": 50},
            ],
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def midterm(school, exam_payload):
    exam, _ = exam_store.create_exam(school.class_id, exam_payload(), school.admin_id)
    return exam.id
