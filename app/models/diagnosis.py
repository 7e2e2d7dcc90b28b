# app/models/diagnosis.py

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator # type: ignore


class CamelModel(BaseModel):
    # Wire names are camelCase, python attributes snake_case; both accepted
    model_config = ConfigDict(populate_by_name=True)


class VehicleDetails(CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    car_type: str = Field(alias="carType")
    car_model: str = Field(alias="carModel")
    mileage: str
    year: Optional[int] = None
    problem_description: str = Field(alias="problemDescription")
    last_service_type: Optional[str] = Field(default=None, alias="lastServiceType")

    @field_validator("mileage", mode="before")
    @classmethod
    def _numeric_mileage(cls, value):
        if isinstance(value, bool):
            raise ValueError("mileage must be a number")
        if isinstance(value, (int, float)):
            return str(value)
        text = str(value).strip()
        try:
            float(text.replace(",", "").replace("_", "").replace(" ", ""))
        except ValueError:
            raise ValueError("mileage must be a number or a numeric string")
        return text

    @field_validator("year", mode="before")
    @classmethod
    def _blank_year(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def label(self) -> str:
        """Human readable 'year make model' used in prompts and search queries."""
        parts = [str(self.year) if self.year else "", self.car_type, self.car_model]
        return " ".join(p.strip() for p in parts if p and p.strip())


class FollowUpQuestion(CamelModel):
    id: Optional[str] = None
    question: str

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value):
        return None if value is None else str(value)


class FollowUpAnswer(CamelModel):
    question_id: Optional[str] = Field(default=None, alias="questionId")
    answer: str

    @field_validator("question_id", mode="before")
    @classmethod
    def _id_as_text(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return str(value).strip()


class RequiredPart(CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    rationale: Optional[str] = None


class RequiredPartWithVideo(CamelModel):
    name: str = Field(alias="part")
    rationale: Optional[str] = None
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    video_title: Optional[str] = Field(default=None, alias="videoTitle")

    @classmethod
    def from_part(
        cls,
        part: RequiredPart,
        video_url: Optional[str] = None,
        video_title: Optional[str] = None,
    ) -> "RequiredPartWithVideo":
        return cls(
            name=part.name,
            rationale=part.rationale,
            video_url=video_url,
            video_title=video_title,
        )


class DiagnosisResult(CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    summary: str
    required_parts: List[RequiredPart] = Field(default_factory=list, alias="requiredParts")
    follow_up_questions: List[FollowUpQuestion] = Field(
        default_factory=list, alias="followUpQuestions"
    )
    # ParseDegraded signal, logged only
    low_confidence: bool = Field(default=False, exclude=True)


class FinalDiagnosis(CamelModel):
    result: DiagnosisResult
    required_parts_with_videos: List[RequiredPartWithVideo] = Field(
        default_factory=list, alias="requiredPartsWithVideos"
    )


def _coerce_answers(value):
    # Old clients send a bare list of strings
    if not isinstance(value, list):
        return value
    return [{"answer": item} if isinstance(item, str) else item for item in value]


# --------------------------------------------------
# Request / response bodies
# --------------------------------------------------

class FollowUpAnalysisRequest(CamelModel):
    initial_analysis: str = Field(alias="initialAnalysis")
    follow_up_questions: List[FollowUpQuestion] = Field(
        default_factory=list, alias="followUpQuestions"
    )
    follow_up_answers: List[FollowUpAnswer] = Field(alias="followUpAnswers")
    car_details: VehicleDetails = Field(alias="carDetails")

    @field_validator("follow_up_answers", mode="before")
    @classmethod
    def _plain_answers(cls, value):
        return _coerce_answers(value)


class MoreQuestionsRequest(CamelModel):
    car_details: VehicleDetails = Field(alias="carDetails")
    previous_questions: List[FollowUpQuestion] = Field(
        default_factory=list, alias="previousQuestions"
    )
    previous_answers: List[FollowUpAnswer] = Field(
        default_factory=list, alias="previousAnswers"
    )

    @field_validator("previous_answers", mode="before")
    @classmethod
    def _plain_answers(cls, value):
        return _coerce_answers(value)


class GuidedAnalysisResponse(CamelModel):
    success: bool = True
    result: str
    follow_up_questions: List[FollowUpQuestion] = Field(alias="followUpQuestions")


class FollowUpAnalysisResponse(CamelModel):
    success: bool = True
    result: str
    required_parts_with_videos: List[RequiredPartWithVideo] = Field(
        alias="requiredPartsWithVideos"
    )


class MoreQuestionsResponse(CamelModel):
    success: bool = True
    questions: List[FollowUpQuestion]


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
    errors: Optional[List[Union[dict, str]]] = None


class DeprecatedRouteResponse(CamelModel):
    success: bool = False
    message: str
    redirect: str


class VideoHit(BaseModel):
    url: str
    title: str
    description: str = ""
