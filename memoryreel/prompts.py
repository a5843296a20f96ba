"""Prompts for frame analysis, poster art and comic pages.

Kept short: the image model drifts from the reference photo when the prompt
is long, and analysis tokens scale with every extra instruction.
"""

# =============================================================================
# ANALYSIS
# =============================================================================

ANALYSIS_PROMPT = """Analyze these {count} frames from a personal {kind}. Infer the plot or theme.
Return VALID JSON only:
{{"title": "Creative Title", "description": "Short synopsis (max 20 words)", "searchContext": "dense keywords: people, places, objects, actions, visible text", "genre": ["Genre1", "Genre2"], "mood": "Cinematic Mood"}}"""

# Response-schema contract for the analysis call
ANALYSIS_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "searchContext": {"type": "string"},
        "genre": {"type": "array", "items": {"type": "string"}},
        "mood": {"type": "string"},
    },
    "required": ["title", "description", "searchContext", "genre", "mood"],
    "additionalProperties": False,
}

# =============================================================================
# IMAGE GENERATION
# =============================================================================

POSTER_PROMPT = """Movie poster for "{title}". Style: {mood}. High quality.
Keep the people and subjects from the reference image recognizable: same faces, same clothing, same setting."""

# Four-page narrative arc, one instruction per page
COMIC_PAGE_BEATS = (
    "Page 1 - Setup: introduce the characters and the place.",
    "Page 2 - Rising tension: something starts to go wrong or gets exciting.",
    "Page 3 - Climax: the most dramatic moment of the story.",
    "Page 4 - Resolution: a warm ending that wraps up the story.",
)

COMIC_PAGE_PROMPT = """Comic book page for "{title}". Story: {description}
Style: {mood}, bold ink lines, 3-4 panels with speech bubbles.
{beat}
Keep the people from the reference image recognizable on every page."""


def get_analysis_prompt(count: int, is_video: bool) -> str:
    """Analysis prompt for ``count`` samples of a video or photo set."""
    return ANALYSIS_PROMPT.format(count=count, kind="video" if is_video else "photo set")


def get_poster_prompt(title: str, mood: str) -> str:
    return POSTER_PROMPT.format(title=title, mood=mood or "Cinematic")


def get_comic_page_prompt(page: int, title: str, description: str, mood: str) -> str:
    """Prompt for comic page ``page`` (1-based)."""
    beat = COMIC_PAGE_BEATS[(page - 1) % len(COMIC_PAGE_BEATS)]
    return COMIC_PAGE_PROMPT.format(
        title=title,
        description=description,
        mood=mood or "Cinematic",
        beat=beat,
    )
