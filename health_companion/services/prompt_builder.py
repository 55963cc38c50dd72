"""
Prompt assembly for the Hindi symptom assistant.

The model keeps no state between calls, so every prompt re-sends the
instructions, the owner's recent reports and recent conversation turns.
"""

from typing import Sequence

from health_companion.models.schemas import ConversationTurn, MedicalReport, Sender

INSTRUCTIONS = (
    "The user is describing a medical symptom or asking a health-related "
    "question in Hindi. Provide a possible reason and suggested solutions in "
    "simple Hindi, easy to understand for a non-technical person living in a "
    "rural area. Avoid medical jargon where possible, or explain it clearly in "
    "Hindi. If you cannot provide medical advice, state in Hindi that you are "
    "an AI and cannot replace a doctor, and recommend consulting a healthcare "
    "professional. Provide the response strictly in JSON format with the "
    'following keys: "possibleReason" (string), "suggestedSolutions" (array '
    'of strings), and "disclaimer" (string). Only output the JSON, no other '
    "text."
)

SENDER_LABELS_HINDI = {
    Sender.USER: "उपयोगकर्ता",
    Sender.AI: "एआई",
}


def format_reports(reports: Sequence[MedicalReport]) -> str:
    """Reports section, newest first; empty string when there are none."""
    if not reports:
        return ""
    lines = ["Medical Reports (most recent first):"]
    for report in reports:
        lines.append(
            f"- File: {report.file_name}, "
            f"Description: {report.description}, "
            f"Uploaded: {report.uploaded_at.strftime('%Y-%m-%d')}"
        )
    return "\n".join(lines) + "\n\n"


def format_history(turns: Sequence[ConversationTurn]) -> str:
    """Conversation section, oldest first; empty string when there are none."""
    if not turns:
        return ""
    lines = ["Previous Conversation (oldest first):"]
    for turn in turns:
        label = SENDER_LABELS_HINDI[Sender(turn.sender)]
        lines.append(
            f"- {label} ({turn.timestamp.strftime('%Y-%m-%d %H:%M')}): {turn.text}"
        )
    return "\n".join(lines) + "\n\n"


def build_prompt(
    user_text: str,
    reports: Sequence[MedicalReport] = (),
    history: Sequence[ConversationTurn] = (),
) -> str:
    """
    Assemble the full prompt.

    Args:
        user_text: The new question, already stripped
        reports: Up to the report context limit, newest first
        history: Up to the history context limit, oldest first

    Returns:
        Prompt text: instructions, reports, history, then the new input
    """
    return (
        f"{INSTRUCTIONS}\n\n"
        f"{format_reports(reports)}"
        f"{format_history(history)}"
        f'User Input (Hindi): "{user_text}"\n'
    )
