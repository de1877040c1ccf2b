"""Data model: Canvas assignment metadata, grading results and the assessment plan."""

import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator

CRITERION_PREFIX = "criterion_"


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Criterion(_Model):
    id: str = Field(alias="_id")
    description: str = ""
    long_description: str = Field("", alias="longDescription")
    points: float = 0

    @model_validator(mode="before")
    @classmethod
    def _null_long_description(cls, data: Any) -> Any:
        # Canvas sends null for criteria without a long description
        if isinstance(data, dict) and data.get("longDescription") is None:
            data = {**data, "longDescription": ""}
        return data


class Rubric(_Model):
    id: str = Field(alias="_id")
    title: str = ""
    criteria: List[Criterion] = []
    points_possible: float = Field(0, alias="pointsPossible")


class User(_Model):
    id: str = Field(alias="_id")
    name: str = ""


class Attachment(_Model):
    id: Optional[str] = Field(None, alias="_id")
    display_name: str = Field(alias="displayName")
    url: str


class Submission(_Model):
    id: str = Field(alias="_id")
    user: User
    excused: Optional[bool] = False
    missing: Optional[bool] = False
    attachments: List[Attachment] = []
    rubric_association_ids: List[int] = []


class AssignmentData(_Model):
    """Parsed result of the single assignment metadata query."""
    id: str = Field(alias="_id")
    name: str = ""
    course_id: str
    rubric: Rubric
    submissions: List[Submission] = []

    @classmethod
    def from_graphql(cls, data: Dict[str, Any]) -> "AssignmentData":
        """Builds the model from the `data` member of the GraphQL response."""
        assignment = data["assignment"]
        submissions = []
        for node in (assignment.get("submissionsConnection") or {}).get("nodes") or []:
            assessments = (node.get("rubricAssessmentsConnection") or {}).get("nodes") or []
            submissions.append({
                **node,
                "attachments": node.get("attachments") or [],
                "rubric_association_ids": [
                    int(a["rubricAssociation"]["_id"])
                    for a in assessments
                    if a.get("rubricAssociation")
                ],
            })
        return cls.model_validate({
            "_id": assignment["_id"],
            "name": assignment.get("name") or "",
            "course_id": assignment["course"]["_id"],
            "rubric": assignment["rubric"],
            "submissions": submissions,
        })


class CriterionResult(_Model):
    """All-or-nothing verdict for one (submission, criterion) pair."""
    points: float
    comments: str = ""


class AssessmentRecord(BaseModel):
    """Rubric assessment for one user.

    Criterion results are held in an explicit mapping keyed by criterion id
    and flattened into Canvas' ``criterion_<id>`` fields on serialization.
    """
    user_id: str
    assessment_type: Literal["grading"] = "grading"
    criteria: Dict[str, CriterionResult] = {}

    @model_validator(mode="before")
    @classmethod
    def _collect_criteria(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        criteria = dict(data.get("criteria") or {})
        rest = {}
        for key, value in data.items():
            if key.startswith(CRITERION_PREFIX):
                criteria[key[len(CRITERION_PREFIX):]] = value
            elif key != "criteria":
                rest[key] = value
        return {**rest, "criteria": criteria}

    @model_serializer(mode="plain")
    def _flatten(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "user_id": self.user_id,
            "assessment_type": self.assessment_type,
        }
        for criterion_id, result in self.criteria.items():
            payload[f"{CRITERION_PREFIX}{criterion_id}"] = {
                "points": result.points,
                "comments": result.comments,
            }
        return payload

    def total_points(self) -> float:
        return sum(result.points for result in self.criteria.values())


class IntermediateDataset(BaseModel):
    """The assessment plan: the only state shared by evaluation and upload."""
    model_config = ConfigDict(populate_by_name=True)

    canvas: str
    course: int
    assignment: int
    rubric_association_id: Optional[int] = Field(None, alias="rubricAssociationId")
    records: List[AssessmentRecord] = Field(default_factory=list, alias="assessmentOutputDataList")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, text: str) -> "IntermediateDataset":
        return cls.model_validate(json.loads(text))

    def save(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_json())

    @classmethod
    def load(cls, path: str) -> "IntermediateDataset":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_json(f.read())


class SubmissionOutcome(_Model):
    """One row of the end-of-run summary."""
    index: int
    submission_id: str
    user_id: str
    user_name: str
    status: Literal["evaluated", "skipped", "failed"]
    points: Optional[float] = None
    error: Optional[str] = None


def format_points(points: float) -> str:
    """Renders a point value without a trailing ``.0`` when it is integral."""
    if float(points).is_integer():
        return str(int(points))
    return str(points)
