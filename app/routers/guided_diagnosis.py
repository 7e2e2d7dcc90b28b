import logging

from fastapi import APIRouter, Depends  # type: ignore
from fastapi.responses import JSONResponse  # type: ignore

from app.models.diagnosis import (
    DeprecatedRouteResponse,
    ErrorResponse,
    FollowUpAnalysisRequest,
    FollowUpAnalysisResponse,
    GuidedAnalysisResponse,
    MoreQuestionsRequest,
    MoreQuestionsResponse,
    VehicleDetails,
)
from app.services.guided_session import GuidedDiagnosisSession, get_guided_session

logger = logging.getLogger("cardiag.routes")

CURRENT_GUIDED_PATH = "/api/analyze-guided"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}

router = APIRouter(
    prefix="/api",
    tags=["Guided Diagnosis"]
)


# Step 1: vehicle + symptoms -> preliminary diagnosis and questions
@router.post("/analyze-guided", response_model=GuidedAnalysisResponse, responses=ERROR_RESPONSES)
@router.post("/analyze", response_model=GuidedAnalysisResponse, include_in_schema=False)
async def analyze_guided(
    req: VehicleDetails,
    session: GuidedDiagnosisSession = Depends(get_guided_session),
):
    logger.info("analyze-guided hit")
    result = await session.start(req)

    return GuidedAnalysisResponse(
        result=result.summary,
        follow_up_questions=result.follow_up_questions,
    )


# Step 2: answers -> final diagnosis with parts and repair videos
@router.post(
    "/analyze-followup",
    response_model=FollowUpAnalysisResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def analyze_followup(
    req: FollowUpAnalysisRequest,
    session: GuidedDiagnosisSession = Depends(get_guided_session),
):
    logger.info("analyze-followup hit")
    final = await session.finish(
        vehicle=req.car_details,
        initial_summary=req.initial_analysis,
        questions=req.follow_up_questions,
        answers=req.follow_up_answers,
    )

    return FollowUpAnalysisResponse(
        result=final.result.summary,
        required_parts_with_videos=final.required_parts_with_videos,
    )


@router.post("/generate-questions", response_model=MoreQuestionsResponse, responses=ERROR_RESPONSES)
async def generate_questions(
    req: MoreQuestionsRequest,
    session: GuidedDiagnosisSession = Depends(get_guided_session),
):
    logger.info("generate-questions hit (%d previous)", len(req.previous_questions))
    questions = await session.more_questions(
        vehicle=req.car_details,
        questions=req.previous_questions,
        answers=req.previous_answers,
    )
    return MoreQuestionsResponse(questions=questions)


# Old clients posted here; tell them where to go instead of silently working
@router.post("/analyze/guided", status_code=307, response_model=DeprecatedRouteResponse)
async def deprecated_guided():
    logger.info("deprecated /api/analyze/guided hit, redirecting")
    body = DeprecatedRouteResponse(
        message=f"This endpoint is deprecated. Please use {CURRENT_GUIDED_PATH} instead.",
        redirect=CURRENT_GUIDED_PATH,
    )
    return JSONResponse(status_code=307, content=body.model_dump())
