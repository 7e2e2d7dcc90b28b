import logging
import re
from enum import Enum
from typing import List, Sequence

from app.agent.diagnosis_agent import get_diagnosis_provider
from app.agent.diagnosis_parser import parse_diagnosis
from app.agent.prompts.guided_prompt import (
    build_followup_prompt,
    build_initial_prompt,
    build_more_questions_prompt,
    with_question_ids,
)
from app.agent.tools.video_search import get_video_search
from app.config import MAX_FOLLOW_UP_QUESTIONS
from app.models.diagnosis import (
    DiagnosisResult,
    FinalDiagnosis,
    FollowUpAnswer,
    FollowUpQuestion,
    VehicleDetails,
)
from app.services.video_resolver import VideoResolver

logger = logging.getLogger("cardiag.session")


class SessionStage(str, Enum):
    START = "start"
    AWAITING_ANSWERS = "awaiting_answers"
    DONE = "done"


def _question_key(text: str) -> str:
    return re.sub(r"[^\w]+", " ", text.casefold()).strip()


class GuidedDiagnosisSession:
    """
    Runs the two-call guided diagnosis.

    Nothing is stored between calls: the client echoes the initial
    analysis and the question set back with its answers, and every method
    is a function of its arguments.
    """

    def __init__(
        self,
        diagnosis_provider,
        video_resolver: VideoResolver,
        max_questions: int = MAX_FOLLOW_UP_QUESTIONS,
    ):
        self.diagnosis_provider = diagnosis_provider
        self.video_resolver = video_resolver
        self.max_questions = max_questions

    # -------------------------------------------------
    # Intake -> questions
    # -------------------------------------------------

    async def start(self, vehicle: VehicleDetails) -> DiagnosisResult:
        messages = build_initial_prompt(vehicle, self.max_questions)
        logger.info("stage=%s vehicle=%r", SessionStage.START.value, vehicle.label())

        raw = await self.diagnosis_provider.generate(messages)
        result = parse_diagnosis(raw, self.max_questions)
        self._log_parse(result, SessionStage.START)

        logger.info(
            "stage=%s questions=%d",
            SessionStage.AWAITING_ANSWERS.value, len(result.follow_up_questions),
        )
        return result

    # -------------------------------------------------
    # Answers -> final diagnosis
    # -------------------------------------------------

    async def finish(
        self,
        vehicle: VehicleDetails,
        initial_summary: str,
        questions: Sequence[FollowUpQuestion],
        answers: Sequence[FollowUpAnswer],
    ) -> FinalDiagnosis:
        messages = build_followup_prompt(vehicle, initial_summary, questions, answers)
        logger.info(
            "stage=%s vehicle=%r questions=%d answers=%d",
            SessionStage.AWAITING_ANSWERS.value, vehicle.label(), len(questions), len(answers),
        )

        raw = await self.diagnosis_provider.generate(messages)
        parsed = parse_diagnosis(raw, self.max_questions)
        self._log_parse(parsed, SessionStage.AWAITING_ANSWERS)

        # The final answer never asks again
        result = parsed.model_copy(update={"follow_up_questions": []})

        parts_with_videos = await self.video_resolver.resolve(result.required_parts, vehicle)

        logger.info("stage=%s parts=%d", SessionStage.DONE.value, len(parts_with_videos))
        return FinalDiagnosis(result=result, required_parts_with_videos=parts_with_videos)

    # -------------------------------------------------
    # Extra questions between the two calls
    # -------------------------------------------------

    async def more_questions(
        self,
        vehicle: VehicleDetails,
        questions: Sequence[FollowUpQuestion],
        answers: Sequence[FollowUpAnswer],
        count: int = 3,
    ) -> List[FollowUpQuestion]:
        count = max(0, min(count, self.max_questions))
        messages = build_more_questions_prompt(vehicle, questions, answers, count)

        raw = await self.diagnosis_provider.generate(messages)
        parsed = parse_diagnosis(raw, count + len(questions))
        self._log_parse(parsed, SessionStage.AWAITING_ANSWERS)

        asked = {_question_key(q.question) for q in questions}
        taken = {q.id for q in with_question_ids(questions)}
        next_id = len(questions) + 1

        fresh: List[FollowUpQuestion] = []
        for candidate in parsed.follow_up_questions:
            key = _question_key(candidate.question)
            if not key or key in asked:
                continue
            asked.add(key)

            while str(next_id) in taken:
                next_id += 1
            taken.add(str(next_id))
            fresh.append(FollowUpQuestion(id=str(next_id), question=candidate.question))

            if len(fresh) >= count:
                break

        logger.info("Generated %d additional question(s)", len(fresh))
        return fresh

    @staticmethod
    def _log_parse(result: DiagnosisResult, stage: SessionStage) -> None:
        if result.low_confidence:
            logger.warning(
                "stage=%s low-confidence parse: no sections or list items found (%d chars)",
                stage.value, len(result.summary),
            )


def get_guided_session() -> GuidedDiagnosisSession:
    return GuidedDiagnosisSession(
        diagnosis_provider=get_diagnosis_provider(),
        video_resolver=VideoResolver(get_video_search()),
    )
