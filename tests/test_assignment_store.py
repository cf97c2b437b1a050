import pytest

from models import SubjectAssignment
from utils import assignment_store
from utils.errors import NotFound, Unauthorized, ValidationError


def test_initialize_subjects_is_idempotent(school):
    first, created = assignment_store.initialize_subjects(school.class_id, school.admin_id)
    second, created_again = assignment_store.initialize_subjects(
        school.class_id, school.admin_id
    )
    assert created is True
    assert created_again is False
    assert first.id == second.id
    assert SubjectAssignment.query.filter_by(class_id=school.class_id).count() == 1


def test_only_class_admin_can_manage_subjects(school):
    with pytest.raises(Unauthorized):
        assignment_store.add_subject(school.class_id, {"name": "Math"}, school.t1_id)


def test_add_subject_normalizes_and_rejects_duplicates(school):
    subject = assignment_store.add_subject(
        school.class_id, {"name": " Physics ", "code": "phy1"}, school.admin_id
    )
    assert subject.name == "Physics"
    assert subject.code == "PHY1"
    assert subject.credits == 1
    assert subject.teacher_id is None

    with pytest.raises(ValidationError):
        assignment_store.add_subject(school.class_id, {"name": "physics"}, school.admin_id)
    with pytest.raises(ValidationError):
        assignment_store.add_subject(
            school.class_id, {"name": "Chemistry", "code": "Phy1"}, school.admin_id
        )


def test_add_subject_generates_code_from_name(school):
    subject = assignment_store.add_subject(
        school.class_id, {"name": "Geography"}, school.admin_id
    )
    assert subject.code.startswith("GEOG")
    assert len(subject.code) == 6


@pytest.mark.parametrize(
    "credits", [-1, 11, 2.5, "3", True, float("nan"), float("inf"), float("-inf")]
)
def test_add_subject_rejects_bad_credits(school, credits):
    with pytest.raises(ValidationError):
        assignment_store.add_subject(
            school.class_id, {"name": "Art", "credits": credits}, school.admin_id
        )


def test_update_subject_validates_before_writing(school, subjects):
    with pytest.raises(ValidationError):
        assignment_store.update_subject(
            school.class_id,
            subjects.math_id,
            {"description": "changed", "name": "English"},
            school.admin_id,
        )
    math = assignment_store.get_subject(school.class_id, subjects.math_id)
    assert math.name == "Math"
    assert math.description == ""


def test_assign_teacher_requires_class_membership(school, subjects):
    with pytest.raises(ValidationError):
        assignment_store.assign_teacher(
            school.class_id, subjects.math_id, school.outsider_id, school.admin_id
        )
    with pytest.raises(NotFound):
        assignment_store.assign_teacher(
            school.class_id, subjects.math_id, school.foreign_id, school.admin_id
        )
    # the class admin may always teach
    subject, previous = assignment_store.assign_teacher(
        school.class_id, subjects.math_id, school.admin_id, school.admin_id
    )
    assert previous == school.t1_id
    assert subject.teacher_id == school.admin_id


def test_remove_teacher_fails_when_unassigned(school, subjects):
    assignment_store.remove_teacher(school.class_id, subjects.math_id, school.admin_id)
    with pytest.raises(ValidationError):
        assignment_store.remove_teacher(school.class_id, subjects.math_id, school.admin_id)


def test_canonical_teacher_map_and_teacher_listing(school, subjects):
    assert assignment_store.canonical_teacher_map(school.class_id) == {
        subjects.math_id: school.t1_id,
        subjects.english_id: school.t2_id,
    }
    listing = assignment_store.get_subjects_by_teacher(school.t1_id)
    assert [s["subject_id"] for s in listing] == [subjects.math_id]
    assert listing[0]["class_id"] == school.class_id


def test_remove_subject(school, subjects):
    result = assignment_store.remove_subject(
        school.class_id, subjects.english_id, school.admin_id
    )
    assert result["subject_name"] == "English"
    assert result["remaining_subjects"] == 1
    with pytest.raises(NotFound):
        assignment_store.get_subject(school.class_id, subjects.english_id)


def test_subjects_status(school):
    status = assignment_store.get_subjects_status(school.class_id, school.admin_id)
    assert status["initialized"] is False
    assert status["subject_count"] == 0

    assignment_store.add_subject(school.class_id, {"name": "Art"}, school.admin_id)
    status = assignment_store.get_subjects_status(school.class_id, school.admin_id)
    assert status["initialized"] is True
    assert [s["name"] for s in status["subjects"]] == ["Art"]
    assert status["class_info"]["section"] == "B"

    with pytest.raises(Unauthorized):
        assignment_store.get_subjects_status(school.class_id, school.t1_id)
