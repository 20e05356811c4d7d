"""Typed payloads crossing the service boundary.

Answers and correct answers are tagged by ``kind``::

    {"kind": "MCQ", "optionId": "A"}
    {"kind": "MSQ", "optionIds": ["A", "C"]}
    {"kind": "NAT", "value": 9.81, "tolerance": 0.05}

Everything is validated here so that grading only ever sees well-formed,
typed values. Snake_case field names are accepted as well as camelCase.
"""
from datetime import datetime
from typing import Annotated, Any, FrozenSet, List, Literal, Optional, Union

import pydantic
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from assessments.errors import ValidationError
from assessments.models import as_utc


def _stringify_id(value: Any) -> Any:
    # option ids compare as strings; 1 and "1" are the same option
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class _Boundary(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class MCQAnswer(_Boundary):
    model_config = ConfigDict(frozen=True)

    kind: Literal["MCQ"] = "MCQ"
    option_id: str = Field(min_length=1)

    @field_validator("option_id", mode="before")
    @classmethod
    def _option_id(cls, value):
        return _stringify_id(value)


class MSQAnswer(_Boundary):
    model_config = ConfigDict(frozen=True)

    kind: Literal["MSQ"] = "MSQ"
    option_ids: FrozenSet[str]

    @field_validator("option_ids", mode="before")
    @classmethod
    def _option_ids(cls, value):
        if isinstance(value, (list, tuple, set, frozenset)):
            return [_stringify_id(v) for v in value]
        return value

    @field_serializer("option_ids")
    def _sorted_ids(self, value):
        return sorted(value)


class NATAnswer(_Boundary):
    model_config = ConfigDict(frozen=True)

    kind: Literal["NAT"] = "NAT"
    value: float = Field(allow_inf_nan=False)
    tolerance: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


AnswerPayload = Annotated[
    Union[MCQAnswer, MSQAnswer, NATAnswer],
    Field(discriminator="kind"),
]

_payload_adapter = TypeAdapter(AnswerPayload)


class QuestionOption(_Boundary):
    id: str = Field(min_length=1)
    text: str
    image_url: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value):
        return _stringify_id(value)


class QuestionDefinition(_Boundary):
    type: Literal["MCQ", "MSQ", "NAT"]
    prompt: str = Field(min_length=1, validation_alias=AliasChoices("prompt", "question"))
    image_url: Optional[str] = None
    options: Optional[List[QuestionOption]] = None
    correct_answer: AnswerPayload
    marks: float = Field(default=1, gt=0)
    order_index: Optional[int] = None
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def _consistent(self):
        if self.correct_answer.kind != self.type:
            raise ValueError(
                f"correct answer kind {self.correct_answer.kind} does not match question type {self.type}"
            )
        if self.type == "NAT":
            return self
        if not self.options:
            raise ValueError(f"{self.type} question needs options")
        option_ids = [o.id for o in self.options]
        if len(set(option_ids)) != len(option_ids):
            raise ValueError("duplicate option ids")
        if self.type == "MCQ":
            expected = {self.correct_answer.option_id}
        else:
            expected = set(self.correct_answer.option_ids)
            if not expected:
                raise ValueError("MSQ correct answer needs at least one option")
        unknown = expected - set(option_ids)
        if unknown:
            raise ValueError(f"correct answer references unknown options: {sorted(unknown)}")
        return self


class AssessmentDefinition(_Boundary):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    type: Literal["QUIZ", "TEST"] = "QUIZ"
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    passing_marks: Optional[float] = Field(default=None, ge=0)
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_result_after: Literal["SUBMIT", "END"] = "SUBMIT"
    max_attempts: int = Field(default=1, ge=1)
    negative_marking: float = Field(default=0, ge=0)
    questions: List[QuestionDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _window(self):
        if self.start_time and self.end_time and as_utc(self.end_time) <= as_utc(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


def _raise_from(exc: pydantic.ValidationError, what: str):
    first = exc.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ()))
    detail = f"{where}: {first.get('msg')}" if where else first.get("msg")
    raise ValidationError(f"Invalid {what} ({detail})") from exc


def parse_answer(raw: Any, expected_kind: Optional[str] = None, allow_tolerance: bool = True):
    """Validate a raw answer payload; ``expected_kind`` is the question type.

    Tolerance belongs to a NAT answer key; pass ``allow_tolerance=False`` for
    student submissions.
    """
    try:
        payload = _payload_adapter.validate_python(raw)
    except pydantic.ValidationError as exc:
        _raise_from(exc, "answer payload")
    if expected_kind is not None and payload.kind != expected_kind:
        raise ValidationError(
            f"Answer kind {payload.kind} does not match question type {expected_kind}"
        )
    if not allow_tolerance and isinstance(payload, NATAnswer) and payload.tolerance is not None:
        raise ValidationError("Invalid answer payload (tolerance: not accepted on a submitted answer)")
    return payload


def dump_answer(payload) -> dict:
    return payload.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_assessment(raw: Any) -> AssessmentDefinition:
    if isinstance(raw, AssessmentDefinition):
        return raw
    try:
        return AssessmentDefinition.model_validate(raw)
    except pydantic.ValidationError as exc:
        _raise_from(exc, "assessment definition")


def parse_questions(raw: Any) -> List[QuestionDefinition]:
    try:
        return [q if isinstance(q, QuestionDefinition) else QuestionDefinition.model_validate(q) for q in raw]
    except pydantic.ValidationError as exc:
        _raise_from(exc, "question")
