"""
Prompt rendering for generation backends.

Pure functions: a ``GenerationRequest`` goes in, instruction text comes out.
Nothing here talks to a provider or trims content to fit a context window;
token budgeting belongs to the backend adapters.

Templates are module-level constants so they can be tuned without touching
the rendering logic.
"""
from __future__ import annotations

import dataclasses
from typing import List, Optional

from scriptwizard.models.records import (
    Script,
    ScriptLength,
    ScriptSections,
    ScriptSettings,
)

IMPROVEMENTS_MARKER = "IMPROVEMENTS:"


# ---------------------------------------------------------------------------
# Request object
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class GenerationRequest:
    """Everything a backend needs for one generate / improve call."""

    title: str
    instructions: str
    tone: str
    length: ScriptLength
    iteration_number: int = 1
    outline: Optional[str] = None
    style: Optional[str] = None
    sections: ScriptSections = dataclasses.field(default_factory=ScriptSections)
    settings: ScriptSettings = dataclasses.field(default_factory=ScriptSettings)
    previous_content: Optional[str] = None

    @classmethod
    def from_script(
        cls,
        script: Script,
        iteration_number: int,
        previous_content: Optional[str] = None,
    ) -> "GenerationRequest":
        return cls(
            title=script.title,
            instructions=script.instructions,
            tone=script.tone,
            length=script.length,
            iteration_number=iteration_number,
            outline=script.outline,
            style=script.style,
            sections=script.sections,
            settings=script.settings,
            previous_content=previous_content,
        )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are an expert scriptwriter for spoken video content. "
    "You write scripts that sound natural when read aloud."
)

_INITIAL_PROMPT = """\
Create a script for a video titled "{title}".

SCRIPT DETAILS:
{instructions}

PARAMETERS:
{parameters}
{outline_block}{structure_block}
FORMAT:
- Format sections with clear headings, one per line, starting with "## "
- Add estimated timestamps for each section, e.g. (0:00-0:45)
- Make the script conversational and engaging for a video audience
- Avoid redundancy and repetitive phrases
- Focus on clear, concise explanations
- Use natural language that works well when spoken aloud

Please create a complete, ready-to-use script.
"""

_IMPROVEMENT_PROMPT = """\
You are improving a script titled "{title}" for iteration #{iteration_number}.

PREVIOUS SCRIPT:
{previous_content}

IMPROVEMENT FOCUS:
{focus}
{goals_block}
Keep the {tone} tone and the {length} target length.
Your task is to improve this script while maintaining its structure and key points.
Analyze the previous script and make targeted improvements to enhance quality.
Do not just make minor word changes - make meaningful improvements to the
structure, flow, and impact of the script.

OUTPUT FORMAT:
1. First provide the complete improved script
2. Then add "{marker}" on its own line followed by a bullet list of the specific changes you made
"""

IMPROVEMENT_FOCUS = {
    1: "Focus on reducing any redundancy or repetitive phrases.",
    2: "Improve the flow between sections and strengthen transitions.",
    3: "Enhance the language variety and incorporate higher-impact phrases.",
    4: "Final polish: optimize for engagement and ensure natural speech patterns.",
}
DEFAULT_IMPROVEMENT_FOCUS = "Improve the overall quality of the script."

_REFINEMENT_GOALS = (
    ("reduce_redundancy", "Reduce redundancy and repetition"),
    ("enhance_clarity", "Enhance clarity and coherence"),
    ("improve_engagement", "Improve engagement and flow"),
)

SCORE_SYSTEM_PROMPT = (
    "Analyze the script and provide metrics as JSON with the following keys: "
    "wordCount (number), estimatedDuration (in seconds), "
    "readabilityScore (1-10 scale with 10 being most readable). "
    "Respond ONLY with the JSON object."
)

COMPARE_SYSTEM_PROMPT = (
    "Compare the original and revised scripts. Calculate the redundancy "
    "reduction percentage (0-100) and identify key improvement areas. "
    'Respond ONLY with JSON: {"redundancyReduction": number, "improvementAreas": [string]}'
)

_COMPARE_PROMPT = """\
Original script:

{original}

Revised script:

{revised}
"""


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def improvement_focus(iteration_number: int) -> str:
    """Focus statement for *iteration_number*; generic past the fourth pass."""
    return IMPROVEMENT_FOCUS.get(iteration_number, DEFAULT_IMPROVEMENT_FOCUS)


def build_initial_prompt(request: GenerationRequest) -> str:
    """Render the first-draft instructions for *request*."""
    parameters: List[str] = [
        f"- Length: {request.length.description}",
        f"- Tone: {request.tone}",
    ]
    if request.style:
        parameters.append(f"- Style: {request.style}")

    outline_block = ""
    if request.outline and request.outline.strip():
        outline_block = f"\nOUTLINE:\n{request.outline.strip()}\n"

    structure_block = ""
    sections = request.sections.included()
    if sections:
        items = "\n".join(f"- {label}" for label in sections)
        structure_block = (
            f"\nSTRUCTURE:\nInclude the following elements:\n{items}\n"
        )

    return _INITIAL_PROMPT.format(
        title=request.title,
        instructions=request.instructions.strip(),
        parameters="\n".join(parameters),
        outline_block=outline_block,
        structure_block=structure_block,
    )


def build_improvement_prompt(request: GenerationRequest) -> str:
    """
    Render the refinement instructions for *request*.

    The previous draft is embedded verbatim.  Raises ``ValueError`` when the
    request carries no previous draft.
    """
    if request.previous_content is None:
        raise ValueError("previous_content is required for an improvement prompt")

    goals = [
        f"- {label}"
        for field, label in _REFINEMENT_GOALS
        if getattr(request.settings, field)
    ]
    goals_block = ""
    if goals:
        goals_block = "\nREFINEMENT GOALS:\n" + "\n".join(goals) + "\n"

    return _IMPROVEMENT_PROMPT.format(
        title=request.title,
        iteration_number=request.iteration_number,
        previous_content=request.previous_content,
        focus=improvement_focus(request.iteration_number),
        goals_block=goals_block,
        tone=request.tone,
        length=request.length.description,
        marker=IMPROVEMENTS_MARKER,
    )


def build_compare_prompt(original: str, revised: str) -> str:
    return _COMPARE_PROMPT.format(original=original, revised=revised)
