"""System prompts for the conversational advisor and the insight extractor.

Both builders are pure: same stage and context in, same text out.
"""

from diagnosis_engine.core.schemas_diagnosis import TranscriptEntry
from diagnosis_engine.core.stages import STAGE_LABELS, STAGE_LABELS_ZH, Stage

# Five contiguous bands covering 0-100, lowest first
SCORE_BANDS: list[tuple[int, int, str, str]] = [
    (0, 29, "severe", "urgent improvement needed"),
    (30, 49, "poor", "clear problems present"),
    (50, 69, "average", "meets basic standards"),
    (70, 89, "good", "above average"),
    (90, 100, "excellent", "industry-leading"),
]


def _stage_name(stage: Stage) -> str:
    return f"{STAGE_LABELS[stage]} ({stage.value} / {STAGE_LABELS_ZH[stage]})"


def build_conversation_prompt(stage: Stage, context: str) -> str:
    """
    Build the advisor system prompt for a conversation turn.

    Args:
        stage: Dimension currently being diagnosed
        context: Formatted knowledge-base passages (or the no-context sentinel)

    Returns:
        System prompt text
    """
    name = _stage_name(stage)
    label = STAGE_LABELS[stage]

    return f"""You are a senior organizational management consultant specializing in {name}.

Your task is to give the user precise, practical advice grounded in the knowledge base excerpts below.

## Reference material (from the knowledge base)

{context}

## Current diagnostic progress

Currently assessing the {name} dimension.

## Conversation principles

1. **Professional depth**: show a deep understanding of {label}
2. **Practical focus**: give concrete advice the user can act on
3. **Evidence-based**: build on the reference material and cite best practices by source
4. **Interactive**: ask questions that uncover the user's real situation
5. **Structured output**: use clear points and lists

## Answer format

- Opening: respond directly to the user's question
- Body: give 2-4 key points
- Closing: ask one follow-up question that takes the diagnosis deeper

## Notes

- If the reference material is thin, supplement it with general management knowledge
- Use phrases such as "Based on what you describe..." or "From consulting experience..."
- Prefer real examples over theory"""


def _score_band_lines() -> str:
    lines = []
    for low, high, label, meaning in reversed(SCORE_BANDS):
        lines.append(f"  - {low}-{high}: {label} ({meaning})")
    return "\n".join(lines)


def build_extraction_prompt(stage: Stage) -> str:
    """
    Build the analyst system prompt that turns a transcript into a DimensionInsight.

    Args:
        stage: Dimension the insight will be stored under

    Returns:
        System prompt text demanding a bare JSON object
    """
    name = _stage_name(stage)

    return f"""You are an organizational management data analyst. Your task is to extract structured data from a conversation.

## Current analysis dimension: {name}

## Task

Analyze the conversation below and extract structured insights about {name}.

## Output format (strict JSON)

Output ONLY a JSON object in exactly this shape, with no other text:

{{
  "score": <number 0-100>,
  "tags": ["tag1", "tag2", "tag3"],
  "key_issues": ["issue1", "issue2"],
  "summary": "<one-sentence summary>",
  "recommendations": ["recommendation1", "recommendation2"]
}}

## Scoring criteria

- **score (0-100)**:
{_score_band_lines()}

- **tags**: 3-5 keywords or tags
- **key_issues**: 2-4 key issues
- **summary**: one sentence describing the current state
- **recommendations**: 2-3 improvement recommendations

## Rules

1. Output strictly JSON, with no explanatory text
2. If the conversation gives too little information, give a conservative estimate
3. Base the score on evidence from the conversation and professional judgment
4. Tags and issues must be specific, not generic"""


def format_transcript_for_extraction(entries: list[TranscriptEntry]) -> str:
    """Render the transcript as ``role: content`` blocks, leaving out system entries."""
    return "\n\n".join(
        f"{entry.role}: {entry.content}" for entry in entries if entry.role != "system"
    )
