"""System prompt assembly."""

from __future__ import annotations

from bubblestream.survey import SurveyQuestionContext


def build_system_prompt(
    base_prompt: str, survey: SurveyQuestionContext | None = None,
) -> str:
    """Append the active survey question's contract to *base_prompt*.

    Without an active survey the base prompt is returned unchanged.
    """
    if survey is None or not survey.requires_validation():
        return base_prompt

    lines = [
        "",
        "",
        "ACTIVE SURVEY:",
        f"- You are asking question {survey.question_number}.",
    ]
    if survey.question_text:
        lines.append(f'- Question: "{survey.question_text}"')

    if survey.expected_menu_type == "rating":
        lines.append(
            f'- Ask it with exactly one bubble of messageType "rating" with '
            f"metadata.minValue {survey.expected_min_value:g}, "
            f"metadata.maxValue {survey.expected_max_value:g}, "
            f"metadata.step {survey.expected_step:g} and "
            f'metadata.ratingType "{survey.expected_rating_type}".'
        )
        return base_prompt + "\n".join(lines) + "\n"

    lines.append(
        f'- Ask it with exactly one bubble of messageType "{survey.expected_menu_type}" '
        f"holding {survey.expected_option_count} options in metadata.options."
    )
    lines.append('- Each option is {"id": ..., "text": ..., "action": "send_message"}.')
    lines.append("- Use these option texts exactly:")
    lines.extend(f'  {i}. "{o.text}"' for i, o in enumerate(survey.expected_options, start=1))
    if survey.expected_menu_type == "multiselect_menu":
        lines.append(
            f"- Set metadata.allowMultiple to true, metadata.minSelections to "
            f"{survey.min_selections} and metadata.maxSelections to "
            f"{survey.max_selections}."
        )
    return base_prompt + "\n".join(lines) + "\n"
