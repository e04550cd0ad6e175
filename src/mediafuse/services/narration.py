"""
Narration script, voice and prompt shaping.

Turns a generation request into the visual prompt sent to the video
provider and the timed SSML sent to the narration provider.
"""

import math
import re
from xml.sax.saxutils import escape

from mediafuse.models.generation import GenerationRequest, VoiceConfig
from mediafuse.models.job import NarrationSubmission

MAX_PROMPT_LENGTH = 512
WORDS_PER_SECOND = 2.5
MIN_SENTENCE_PAUSE = 0.5
MAX_BREAK_MS = 10_000  # Polly's upper bound for a single <break>

SENTENCE_SPLIT = re.compile(r"[.!?]+")

TOPIC_PROMPT_HINTS: dict[str, str] = {
    "investing": "Show financial markets, stock charts, trading floors, and investment graphics.",
    "education": "Show classrooms, books, digital learning, and educational technology.",
    "tourism": "Show travel destinations, landmarks, landscapes, and cultural sites.",
    "technology": "Show futuristic tech, AI interfaces, robots, and innovation labs.",
    "health": "Show fitness activities, medical technology, and wellness environments.",
}

TOPIC_VOICES: dict[str, VoiceConfig] = {
    "investing": VoiceConfig(voice="Matthew", speed="medium"),
    "education": VoiceConfig(voice="Joanna", speed="medium"),
    "tourism": VoiceConfig(voice="Amy", speed="medium", language="en-GB"),
    "technology": VoiceConfig(voice="Matthew", speed="medium"),
    "health": VoiceConfig(voice="Joanna", speed="slow"),
}

DEFAULT_VOICE_TOPIC = "education"


def split_sentences(text: str) -> list[str]:
    """Split text on sentence punctuation, dropping empty fragments."""
    return [part.strip() for part in SENTENCE_SPLIT.split(text) if part.strip()]


def enhance_prompt_for_topic(prompt: str, topic: str) -> str:
    """
    Append a topic-specific visual hint to the prompt.

    The result never exceeds MAX_PROMPT_LENGTH characters.
    """
    hint = TOPIC_PROMPT_HINTS.get(topic.lower())
    enhanced = f"{prompt} {hint}" if hint else prompt
    if len(enhanced) > MAX_PROMPT_LENGTH:
        return enhanced[: MAX_PROMPT_LENGTH - 3] + "..."
    return enhanced


def default_narration_script(request: GenerationRequest) -> str:
    """Return the explicit narration script or derive one from the prompt."""
    if request.narration_script and request.narration_script.strip():
        return request.narration_script.strip()
    return f"Welcome to today's {request.topic} update. {request.prompt.strip()}"


def fit_script_to_duration(script: str, duration_seconds: float) -> str:
    """Trim a script to what can be spoken in the given duration."""
    words = script.split()
    target = math.floor(duration_seconds * WORDS_PER_SECOND)
    if len(words) > target:
        return " ".join(words[:target]) + "..."
    return " ".join(words)


def resolve_voice(topic: str, voice_config: VoiceConfig | None = None) -> VoiceConfig:
    """Pick the narration voice; an explicit config wins over the topic default."""
    if voice_config is not None:
        return voice_config
    return TOPIC_VOICES.get(topic.lower(), TOPIC_VOICES[DEFAULT_VOICE_TOPIC])


def sentence_pause_seconds(duration_seconds: float, sentence_count: int) -> float:
    """Pause after each sentence so narration spreads over the video."""
    if sentence_count <= 0:
        return MIN_SENTENCE_PAUSE
    return max(MIN_SENTENCE_PAUSE, (duration_seconds - 2 * sentence_count) / sentence_count)


def build_ssml(script: str, duration_seconds: float, voice: VoiceConfig) -> str:
    """
    Build timed SSML for a narration script.

    Args:
        script: Plain narration text
        duration_seconds: Length of the video the narration accompanies
        voice: Voice settings (speed becomes the prosody rate)

    Returns:
        SSML document
    """
    sentences = split_sentences(script)
    pause_ms = min(MAX_BREAK_MS, int(sentence_pause_seconds(duration_seconds, len(sentences)) * 1000))

    body = " ".join(f'{escape(sentence)}.<break time="{pause_ms}ms"/>' for sentence in sentences)
    return (
        "<speak>"
        '<break time="500ms"/>'
        f'<prosody rate="{escape(voice.speed)}">{body}</prosody>'
        '<break time="1s"/>'
        "</speak>"
    )


def build_narration_submission(request: GenerationRequest, key_prefix: str = "") -> NarrationSubmission:
    """
    Prepare the narration provider call for a request.

    Args:
        request: Generation request
        key_prefix: Storage sub-prefix for the narration output

    Returns:
        Submission carrying SSML plus the plain script as fallback
    """
    script = fit_script_to_duration(default_narration_script(request), request.duration_seconds)
    voice = resolve_voice(request.topic, request.voice_config)
    return NarrationSubmission(
        text=build_ssml(script, request.duration_seconds, voice),
        voice_id=voice.voice,
        text_type="ssml",
        plain_text=script,
        language=voice.language,
        key_prefix=key_prefix,
    )
