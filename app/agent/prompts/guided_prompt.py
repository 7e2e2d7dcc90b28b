from typing import List, Optional, Sequence, Tuple

from langchain_core.messages import BaseMessage, SystemMessage, HumanMessage  # type: ignore

from app.errors import ValidationError
from app.models.diagnosis import FollowUpAnswer, FollowUpQuestion, VehicleDetails


NO_ANSWER = "(no answer)"

MECHANIC_PERSONA = (
    "You are an experienced, friendly car mechanic helping everyday drivers "
    "diagnose problems with their vehicle.\n\n"
    "Personality:\n"
    "- Calm, practical and reassuring.\n"
    "- Simple, non-technical language.\n"
    "- Never invent facts or claim certainty without evidence.\n\n"
    "Language rule:\n"
    "- Write your answer in the same language as the user's problem description.\n"
    "- Keep the section headings exactly as given, in English.\n"
)


# -------------------------------------------------
# Helpers
# -------------------------------------------------

def require_vehicle(vehicle: Optional[VehicleDetails]) -> VehicleDetails:
    if vehicle is None:
        raise ValidationError("Car details are required")

    missing = [
        label
        for label, value in (
            ("Car type", vehicle.car_type),
            ("Car model", vehicle.car_model),
            ("Mileage", vehicle.mileage),
            ("Problem description", vehicle.problem_description),
        )
        if not value or not value.strip()
    ]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")

    return vehicle


def with_question_ids(questions: Sequence[FollowUpQuestion]) -> List[FollowUpQuestion]:
    """
    Gives every question an id. Questions echoed back without ids get their
    1-based position, unless another question already uses that id.
    """
    taken = {q.id for q in questions if q.id}
    result: List[FollowUpQuestion] = []
    for index, question in enumerate(questions, start=1):
        if question.id:
            result.append(question)
            continue
        candidate = str(index)
        while candidate in taken:
            candidate = f"{candidate}.{index}"
        taken.add(candidate)
        result.append(FollowUpQuestion(id=candidate, question=question.question))
    return result


def pair_questions_and_answers(
    questions: Sequence[FollowUpQuestion],
    answers: Sequence[FollowUpAnswer],
) -> Tuple[List[Tuple[FollowUpQuestion, Optional[str]]], List[str]]:
    """
    Matches answers to questions.

    Answers carrying a known questionId go to that question whatever their
    order. Answers with no id fill the still-unanswered questions in order.
    Answers with an unknown id, repeats, and positional leftovers come back
    as free-text notes.
    """
    questions = with_question_ids(questions)
    index_by_id = {q.id: i for i, q in enumerate(questions)}

    paired: List[Optional[str]] = [None] * len(questions)
    positional: List[str] = []
    notes: List[str] = []

    for answer in answers:
        if answer.question_id is None:
            positional.append(answer.answer)
            continue

        idx = index_by_id.get(answer.question_id)
        if idx is None or paired[idx] is not None:
            notes.append(answer.answer)
        else:
            paired[idx] = answer.answer

    for idx in range(len(questions)):
        if paired[idx] is None and positional:
            paired[idx] = positional.pop(0)

    notes.extend(positional)

    return list(zip(questions, paired)), notes


def _vehicle_section(vehicle: VehicleDetails) -> str:
    lines = [
        "Vehicle:",
        f"- Make: {vehicle.car_type}",
        f"- Model: {vehicle.car_model}",
    ]
    if vehicle.year:
        lines.append(f"- Year: {vehicle.year}")
    lines.append(f"- Mileage: {vehicle.mileage}")
    if vehicle.last_service_type:
        lines.append(f"- Last service: {vehicle.last_service_type}")
    return "\n".join(lines)


def _qa_section(
    questions: Sequence[FollowUpQuestion],
    answers: Sequence[FollowUpAnswer],
) -> str:
    pairs, notes = pair_questions_and_answers(questions, answers)

    lines = []
    for number, (question, answer) in enumerate(pairs, start=1):
        lines.append(f"Q{number}: {question.question}")
        lines.append(f"A{number}: {answer if answer is not None else NO_ANSWER}")

    if notes:
        lines.append("Additional notes from the driver:")
        lines.extend(f"- {note}" for note in notes)

    return "\n".join(lines) if lines else "No follow-up answers were given."


# -------------------------------------------------
# Prompt builders
# -------------------------------------------------

def build_initial_prompt(vehicle: VehicleDetails, max_questions: int = 5) -> List[BaseMessage]:
    vehicle = require_vehicle(vehicle)
    min_questions = min(3, max_questions)

    return [
        SystemMessage(content=MECHANIC_PERSONA),
        HumanMessage(
            content=(
                f"{_vehicle_section(vehicle)}\n\n"
                "Problem description:\n"
                f"{vehicle.problem_description}\n\n"
                "--------------------------------------------------\n"
                "TASK\n"
                "--------------------------------------------------\n"
                "Give a preliminary diagnosis only. Focus on understanding and\n"
                "classifying the problem. Do NOT name specific replacement parts,\n"
                "prices, or detailed repair instructions yet.\n\n"
                f"Then ask between {min_questions} and {max_questions} short, specific "
                "follow-up questions\n"
                "that would narrow the diagnosis down (symptoms, timing, conditions).\n\n"
                "--------------------------------------------------\n"
                "OUTPUT FORMAT (STRICT)\n"
                "--------------------------------------------------\n"
                "Diagnosis:\n"
                "<a few sentences>\n\n"
                "Follow-up questions:\n"
                "1. <question>\n"
                "2. <question>\n"
                "3. <question>\n"
            )
        ),
    ]


def build_followup_prompt(
    vehicle: VehicleDetails,
    initial_summary: str,
    questions: Sequence[FollowUpQuestion],
    answers: Sequence[FollowUpAnswer],
) -> List[BaseMessage]:
    vehicle = require_vehicle(vehicle)
    if not initial_summary or not initial_summary.strip():
        raise ValidationError("Initial analysis is required")

    return [
        SystemMessage(content=MECHANIC_PERSONA),
        HumanMessage(
            content=(
                f"{_vehicle_section(vehicle)}\n\n"
                "Original problem description:\n"
                f"{vehicle.problem_description}\n\n"
                "Your preliminary diagnosis:\n"
                f"{initial_summary}\n\n"
                "Follow-up questions and the driver's answers:\n"
                f"{_qa_section(questions, answers)}\n\n"
                "--------------------------------------------------\n"
                "TASK\n"
                "--------------------------------------------------\n"
                "Using ALL of the information above, give the final, detailed\n"
                "diagnosis. Name the specific replacement parts that are needed,\n"
                "one per line, each with a short reason. If no parts are needed,\n"
                "write \"- None\" under the parts heading.\n"
                "Do NOT ask any more questions. This is the final answer.\n\n"
                "--------------------------------------------------\n"
                "OUTPUT FORMAT (STRICT)\n"
                "--------------------------------------------------\n"
                "Diagnosis:\n"
                "<detailed explanation>\n\n"
                "Required parts:\n"
                "- <part name>: <why it is needed>\n\n"
                "Repair steps:\n"
                "1. <step>\n"
            )
        ),
    ]


def build_more_questions_prompt(
    vehicle: VehicleDetails,
    questions: Sequence[FollowUpQuestion],
    answers: Sequence[FollowUpAnswer],
    count: int = 3,
) -> List[BaseMessage]:
    vehicle = require_vehicle(vehicle)

    return [
        SystemMessage(content=MECHANIC_PERSONA),
        HumanMessage(
            content=(
                f"{_vehicle_section(vehicle)}\n\n"
                "Problem description:\n"
                f"{vehicle.problem_description}\n\n"
                "Questions already asked and the driver's answers:\n"
                f"{_qa_section(questions, answers)}\n\n"
                "--------------------------------------------------\n"
                "TASK\n"
                "--------------------------------------------------\n"
                f"Ask {count} NEW, specific follow-up questions that improve the\n"
                "diagnosis. Never repeat a question that was already asked.\n"
                "Write the questions only, no explanations.\n\n"
                "Follow-up questions:\n"
                "1. <question>\n"
            )
        ),
    ]
