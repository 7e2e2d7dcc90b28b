from app.agent.diagnosis_parser import parse_diagnosis

from tests.conftest import FINAL_REPLY, INITIAL_REPLY


def test_initial_reply_splits_summary_and_questions():
    result = parse_diagnosis(INITIAL_REPLY)

    assert result.summary.startswith("A knocking noise from the engine")
    assert [q.id for q in result.follow_up_questions] == ["1", "2", "3"]
    assert result.follow_up_questions[0].question == "Does the knocking get louder when you accelerate?"
    assert result.required_parts == []
    assert not result.low_confidence


def test_final_reply_extracts_parts_and_keeps_repair_steps_in_summary():
    result = parse_diagnosis(FINAL_REPLY)

    assert [p.name for p in result.required_parts] == ["Spark plugs", "Knock sensor"]
    assert result.required_parts[0].rationale == "electrodes are worn past the service limit"
    # prose under an item is a continuation, not a new part
    assert result.required_parts[1].rationale == (
        "intermittent signal confirmed by the symptoms at idle"
    )
    assert result.summary.startswith("The knock is caused by worn spark plugs")
    assert "Repair steps:" in result.summary
    assert "Spark plugs: electrodes" not in result.summary
    assert result.follow_up_questions == []


def test_unstructured_text_degrades_to_raw_summary():
    raw = "  The engine might be knocking because of bad fuel. Try a tank of premium.  "

    result = parse_diagnosis(raw)

    assert result.summary == raw.strip()
    assert result.required_parts == []
    assert result.follow_up_questions == []
    assert result.low_confidence


def test_never_raises_on_odd_input():
    for raw in ["", "   \n\n", None, 42, ":::", "- ", "1.", "**", "#"]:
        result = parse_diagnosis(raw)
        assert isinstance(result.summary, str)
        assert result.required_parts == []


def test_parsing_is_deterministic():
    assert parse_diagnosis(FINAL_REPLY) == parse_diagnosis(FINAL_REPLY)
    assert parse_diagnosis(INITIAL_REPLY).model_dump() == parse_diagnosis(INITIAL_REPLY).model_dump()


def test_questions_are_capped_and_renumbered_without_explicit_ids():
    raw = "Summary: needs more info\n\nQuestions:\n" + "\n".join(
        f"- Question number {i}?" for i in range(1, 9)
    )

    result = parse_diagnosis(raw, max_questions=5)

    assert len(result.follow_up_questions) == 5
    assert [q.id for q in result.follow_up_questions] == ["1", "2", "3", "4", "5"]


def test_tolerates_mixed_markers_and_extra_whitespace():
    raw = (
        "### Diagnosis\n"
        "   Likely a vacuum leak.   \n"
        "\n"
        "## Parts needed\n"
        "*   Intake gasket (both sides)\n"
        "•\tPCV valve — stuck open\n"
        "2) Vacuum hose: cracked\n"
    )

    result = parse_diagnosis(raw)

    assert result.summary == "Likely a vacuum leak."
    assert [p.name for p in result.required_parts] == ["Intake gasket", "PCV valve", "Vacuum hose"]
    assert result.required_parts[0].rationale == "both sides"
    assert result.required_parts[1].rationale == "stuck open"


def test_missing_parts_section_is_not_an_error():
    result = parse_diagnosis("Diagnosis:\nTyre pressure was low, no parts needed.\n")

    assert result.required_parts == []
    assert not result.low_confidence


def test_none_item_produces_no_part():
    result = parse_diagnosis("Diagnosis: loose cap\n\nRequired parts:\n- None\n")

    assert result.required_parts == []
    assert result.summary == "loose cap"


def test_duplicate_parts_are_merged():
    raw = "Required parts:\n- Spark plugs: worn\n- spark plugs\n- Ignition coil\n"

    result = parse_diagnosis(raw)

    assert [p.name for p in result.required_parts] == ["Spark plugs", "Ignition coil"]
    assert result.required_parts[0].rationale == "worn"


def test_intro_line_inside_parts_section_is_ignored():
    raw = (
        "Required parts:\n"
        "Based on your answers you will need the following:\n"
        "- Thermostat\n"
        "- Coolant\n"
    )

    result = parse_diagnosis(raw)

    assert [p.name for p in result.required_parts] == ["Thermostat", "Coolant"]


def test_arabic_reply_with_emoji_heading_and_arabic_digits():
    raw = (
        "التشخيص:\n"
        "صوت الطرق في المحرك غالباً بسبب شمعات الإشعال.\n"
        "\n"
        "🧩 قطع الغيار المطلوبة\n"
        "١. شمعات الإشعال: متآكلة\n"
        "٢. حساس الصفع\n"
        "\n"
        "الأسئلة:\n"
        "١. هل يزيد الصوت عند التسارع؟\n"
    )

    result = parse_diagnosis(raw)

    assert result.summary == "صوت الطرق في المحرك غالباً بسبب شمعات الإشعال."
    assert [p.name for p in result.required_parts] == ["شمعات الإشعال", "حساس الصفع"]
    assert result.required_parts[0].rationale == "متآكلة"
    assert result.follow_up_questions[0].id == "1"
    assert result.follow_up_questions[0].question == "هل يزيد الصوت عند التسارع؟"


def test_numbered_questions_without_heading_are_picked_up():
    raw = (
        "Sounds like a worn belt.\n"
        "1. Does it squeal on cold starts?\n"
        "2. Does it stop once the engine warms up?\n"
    )

    result = parse_diagnosis(raw)

    assert result.summary == "Sounds like a worn belt."
    assert [q.question for q in result.follow_up_questions] == [
        "Does it squeal on cold starts?",
        "Does it stop once the engine warms up?",
    ]


def test_duplicate_explicit_numbers_fall_back_to_sequential_ids():
    raw = "Follow-up questions:\n1. First?\n1. Second?\n3. Third?\n"

    result = parse_diagnosis(raw)

    assert [q.id for q in result.follow_up_questions] == ["1", "2", "3"]


def test_question_continuation_lines_are_joined():
    raw = "Questions:\n1. When the car is cold,\n   does the noise appear right away?\n2. Any smoke?\n"

    result = parse_diagnosis(raw)

    assert result.follow_up_questions[0].question == (
        "When the car is cold, does the noise appear right away?"
    )
    assert len(result.follow_up_questions) == 2


def test_unbulleted_parts_keep_indented_continuations():
    raw = "Required parts:\nSpark plugs: worn\n   replace as a full set\nKnock sensor\n"

    result = parse_diagnosis(raw)

    assert [p.name for p in result.required_parts] == ["Spark plugs", "Knock sensor"]
    assert result.required_parts[0].rationale == "worn replace as a full set"


def test_unbulleted_lowercase_line_continues_previous_part():
    raw = "Required parts:\nThermostat\nstuck closed, causing overheating.\nCoolant\n"

    result = parse_diagnosis(raw)

    assert [p.name for p in result.required_parts] == ["Thermostat", "Coolant"]
    assert result.required_parts[0].rationale == "stuck closed, causing overheating."


def test_unbulleted_part_with_long_rationale_is_kept():
    raw = (
        "Required parts:\n"
        "Spark plugs: the electrodes are worn well past the service limit now\n"
        "Knock sensor\n"
    )

    result = parse_diagnosis(raw)

    assert [p.name for p in result.required_parts] == ["Spark plugs", "Knock sensor"]
    assert result.required_parts[0].rationale == (
        "the electrodes are worn well past the service limit now"
    )
