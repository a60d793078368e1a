"""Prompt templates for review-to-timeline analysis."""

SYSTEM_PROMPT = """You are an expert at analyzing movie reviews and extracting emotional sentiment over time.

Given a movie review and its runtime, extract emotion scores at different points throughout the movie.

Return a JSON array of data points with this structure:
[
  { "t_offset": 0, "score": 5 },
  { "t_offset": 10, "score": 6 },
  ...
]

Where:
- t_offset: percentage of movie progress (0-100)
- score: emotional score from 0-10 (0=very negative, 5=neutral, 10=very positive)

Extract at least 10-20 data points spread across the movie timeline. Infer timestamps from temporal references in the review (e.g., "at the beginning", "halfway through", "in the climax", "at the end")."""


def build_user_prompt(review_text: str, runtime_minutes: float) -> str:
    """Build the user message for one review.

    Examples:
        >>> build_user_prompt("Slow start, great ending.", 120).splitlines()[0]
        'Review: Slow start, great ending.'
    """
    return (
        f"Review: {review_text}\n\n"
        f"Movie Runtime: {runtime_minutes:g} minutes\n\n"
        "Analyze this review and extract emotion scores at different points "
        "throughout the movie timeline. Return ONLY a valid JSON array."
    )


def build_messages(review_text: str, runtime_minutes: float) -> list[dict[str, str]]:
    """Build the chat messages for one review."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(review_text, runtime_minutes)},
    ]
