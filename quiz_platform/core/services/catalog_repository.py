"""In-memory store for faculties, subjects and their question banks."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from quiz_platform.core.errors import NotFoundError, ValidationError
from quiz_platform.core.interfaces import QuestionStore
from quiz_platform.core.models import Faculty, ImportedQuestionRow, Question, Subject


class CatalogRepository(QuestionStore):
    """Manages the lifecycle and storage of the question catalog."""

    def __init__(self) -> None:
        self._faculties: dict[int, Faculty] = {}
        self._subjects: dict[int, Subject] = {}
        self._questions: dict[int, Question] = {}
        self._faculty_counter = 0
        self._subject_counter = 0
        self._question_counter = 0

    # --- Faculties ---

    def add_faculty(self, name: str) -> Faculty:
        self._faculty_counter += 1
        faculty = Faculty(id=self._faculty_counter, name=self._clean_name(name, "Faculty"))
        self._faculties[faculty.id] = faculty
        return faculty

    def update_faculty(self, faculty_id: int, name: str) -> Faculty:
        faculty = self.get_faculty(faculty_id)
        faculty.name = self._clean_name(name, "Faculty")
        return faculty

    def delete_faculty(self, faculty_id: int) -> None:
        self.get_faculty(faculty_id)
        for subject in [s for s in self._subjects.values() if s.faculty_id == faculty_id]:
            self.delete_subject(subject.id)
        del self._faculties[faculty_id]

    def get_faculty(self, faculty_id: int) -> Faculty:
        faculty = self._faculties.get(faculty_id)
        if faculty is None:
            raise NotFoundError(f"Faculty {faculty_id} not found.")
        return faculty

    def list_faculties(self) -> list[Faculty]:
        return sorted(self._faculties.values(), key=lambda f: (f.name.casefold(), f.id))

    # --- Subjects ---

    def add_subject(self, name: str, faculty_id: int) -> Subject:
        self.get_faculty(faculty_id)
        self._subject_counter += 1
        subject = Subject(
            id=self._subject_counter,
            name=self._clean_name(name, "Subject"),
            faculty_id=faculty_id,
        )
        self._subjects[subject.id] = subject
        return subject

    def update_subject(self, subject_id: int, name: str, faculty_id: int) -> Subject:
        subject = self.get_subject(subject_id)
        self.get_faculty(faculty_id)
        subject.name = self._clean_name(name, "Subject")
        subject.faculty_id = faculty_id
        return subject

    def delete_subject(self, subject_id: int) -> None:
        self.get_subject(subject_id)
        for question_id in [q.id for q in self._questions.values() if q.subject_id == subject_id]:
            del self._questions[question_id]
        del self._subjects[subject_id]

    def get_subject(self, subject_id: int) -> Subject:
        subject = self._subjects.get(subject_id)
        if subject is None:
            raise NotFoundError(f"Subject {subject_id} not found.")
        return subject

    def find_subject(self, subject_id: int) -> Subject | None:
        return self._subjects.get(subject_id)

    def list_subjects(self, faculty_id: int | None = None) -> list[Subject]:
        subjects = [
            s for s in self._subjects.values()
            if faculty_id is None or s.faculty_id == faculty_id
        ]
        return sorted(subjects, key=lambda s: (s.name.casefold(), s.id))

    # --- Questions ---

    def add_question(
        self,
        subject_id: int,
        question_text: str,
        correct_answer: str,
        wrong_answers: Sequence[str],
        explanation: str | None = None,
    ) -> Question:
        self.get_subject(subject_id)
        question = self._build_question(
            self._next_question_id(), subject_id, question_text, correct_answer, wrong_answers, explanation
        )
        self._questions[question.id] = question
        return question

    def add_imported_rows(self, subject_id: int, rows: Iterable[ImportedQuestionRow]) -> list[Question]:
        """Add imported rows to a subject; nothing is stored unless every row is valid."""
        self.get_subject(subject_id)
        drafts = []
        for number, row in enumerate(rows, start=1):
            if not 1 <= row.correct_index <= len(row.answers):
                raise ValidationError(f"Row {number}: correct answer must be between 1 and {len(row.answers)}.")
            correct = row.answers[row.correct_index - 1]
            wrong = [answer for index, answer in enumerate(row.answers, start=1) if index != row.correct_index]
            try:
                drafts.append(self._build_question(0, subject_id, row.question_text, correct, wrong, row.explanation))
            except ValidationError as exc:
                raise ValidationError(f"Row {number}: {exc}") from exc

        created = []
        for draft in drafts:
            draft.id = self._next_question_id()
            self._questions[draft.id] = draft
            created.append(draft)
        return created

    def update_question(
        self,
        question_id: int,
        subject_id: int,
        question_text: str,
        correct_answer: str,
        wrong_answers: Sequence[str],
        explanation: str | None = None,
    ) -> Question:
        existing = self.get_question(question_id)
        self.get_subject(subject_id)
        updated = self._build_question(
            question_id, subject_id, question_text, correct_answer, wrong_answers, explanation
        )
        # Preserve the original creation time
        updated.created_at = existing.created_at
        self._questions[question_id] = updated
        return updated

    def delete_question(self, question_id: int) -> None:
        self.get_question(question_id)
        del self._questions[question_id]

    def get_question(self, question_id: int) -> Question:
        question = self._questions.get(question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found.")
        return question

    def list_questions(self, subject_id: int | None = None) -> list[Question]:
        """Questions newest first, optionally limited to one subject."""
        questions = [
            q for q in self._questions.values()
            if subject_id is None or q.subject_id == subject_id
        ]
        return sorted(questions, key=lambda q: (q.created_at, q.id), reverse=True)

    def fetch_questions(self, subject_id: int) -> list[Question]:
        self.get_subject(subject_id)
        return [q for q in self._questions.values() if q.subject_id == subject_id]

    # --- Counters ---

    def faculty_count(self) -> int:
        return len(self._faculties)

    def subject_count(self) -> int:
        return len(self._subjects)

    def question_count(self) -> int:
        return len(self._questions)

    # --- Validation ---

    def _next_question_id(self) -> int:
        self._question_counter += 1
        return self._question_counter

    def _build_question(
        self,
        question_id: int,
        subject_id: int,
        question_text: str,
        correct_answer: str,
        wrong_answers: Sequence[str],
        explanation: str | None,
    ) -> Question:
        cleaned_text = question_text.strip()
        if not cleaned_text:
            raise ValidationError("Question text must not be empty.")
        correct, *wrong = self._validate_answers([correct_answer, *wrong_answers])
        cleaned_explanation = explanation.strip() if explanation else None
        return Question(
            id=question_id,
            subject_id=subject_id,
            question_text=cleaned_text,
            correct_answer=correct,
            wrong_answers=(wrong[0], wrong[1], wrong[2]),
            explanation=cleaned_explanation or None,
        )

    @staticmethod
    def _validate_answers(answers: list[str]) -> list[str]:
        if len(answers) != 4:
            raise ValidationError("Each question must have one correct and three wrong answers.")
        cleaned = [str(answer).strip() for answer in answers]
        if any(not answer for answer in cleaned):
            raise ValidationError("Answer text cannot be empty.")
        return cleaned

    @staticmethod
    def _clean_name(name: str, kind: str) -> str:
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError(f"{kind} name must not be empty.")
        return cleaned
