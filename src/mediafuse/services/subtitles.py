"""SRT subtitle generation from narration scripts."""

from mediafuse.services.narration import split_sentences


def format_srt_time(milliseconds: int) -> str:
    """Format a millisecond offset as HH:MM:SS,mmm."""
    hours, remainder = divmod(milliseconds, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    seconds, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def build_srt(script: str, duration_seconds: float) -> str:
    """
    Build SRT subtitles spreading the script's sentences evenly.

    Args:
        script: Narration text
        duration_seconds: Total subtitle timeline length

    Returns:
        SRT document (empty if the script has no sentences)
    """
    sentences = split_sentences(script)
    if not sentences:
        return ""

    total_ms = int(round(duration_seconds * 1000))
    count = len(sentences)

    cues = []
    for index, sentence in enumerate(sentences):
        start = total_ms * index // count
        end = total_ms * (index + 1) // count
        cues.append(f"{index + 1}\n{format_srt_time(start)} --> {format_srt_time(end)}\n{sentence}.\n")

    return "\n".join(cues)
