"""
Tests for narration shaping and subtitles.
"""

from mediafuse.models import GenerationRequest, VoiceConfig
from mediafuse.services.narration import (
    MAX_PROMPT_LENGTH,
    build_narration_submission,
    build_ssml,
    default_narration_script,
    enhance_prompt_for_topic,
    fit_script_to_duration,
    resolve_voice,
    sentence_pause_seconds,
)
from mediafuse.services.subtitles import build_srt, format_srt_time


class TestPromptEnhancement:
    """Tests for topic prompt hints."""

    def test_appends_topic_hint(self) -> None:
        """Known topics should get a visual hint appended."""
        enhanced = enhance_prompt_for_topic("Bitcoin hits a new high", "Investing")

        assert enhanced.startswith("Bitcoin hits a new high ")
        assert "stock charts" in enhanced

    def test_unknown_topic_unchanged(self) -> None:
        """Unknown topics should leave the prompt as is."""
        assert enhance_prompt_for_topic("A quiet lake", "gardening") == "A quiet lake"

    def test_truncates_long_prompts(self) -> None:
        """Prompts should be cut to the provider limit with an ellipsis."""
        enhanced = enhance_prompt_for_topic("x" * 600, "technology")

        assert len(enhanced) == MAX_PROMPT_LENGTH
        assert enhanced.endswith("...")


class TestNarrationScript:
    """Tests for script derivation and fitting."""

    def test_explicit_script_wins(self) -> None:
        """An explicit narration script should be used verbatim."""
        request = GenerationRequest(prompt="p", duration_seconds=10, narration_script=" Hello there. ")

        assert default_narration_script(request) == "Hello there."

    def test_derived_script(self) -> None:
        """Without a script, one should be derived from topic and prompt."""
        request = GenerationRequest(prompt="Rates are falling.", topic="investing", duration_seconds=10)

        assert default_narration_script(request) == "Welcome to today's investing update. Rates are falling."

    def test_fit_trims_to_speaking_rate(self) -> None:
        """Scripts longer than the duration allows should be trimmed."""
        script = " ".join(f"w{i}" for i in range(100))

        fitted = fit_script_to_duration(script, 4)

        assert fitted == " ".join(f"w{i}" for i in range(10)) + "..."

    def test_fit_keeps_short_scripts(self) -> None:
        """Scripts that fit should be unchanged."""
        assert fit_script_to_duration("Short and sweet.", 10) == "Short and sweet."


class TestVoiceAndSsml:
    """Tests for voice selection and SSML."""

    def test_topic_default_voices(self) -> None:
        """Each topic should map to its default voice."""
        assert resolve_voice("investing").voice == "Matthew"
        assert resolve_voice("technology").voice == "Matthew"
        assert resolve_voice("education").voice == "Joanna"
        assert resolve_voice("tourism").voice == "Amy"
        assert resolve_voice("health").speed == "slow"
        assert resolve_voice("unknown").voice == "Joanna"

    def test_explicit_voice_overrides(self) -> None:
        """An explicit voice config should win over the topic default."""
        config = VoiceConfig(voice="Brian", speed="fast", language="en-GB")

        assert resolve_voice("investing", config) == config

    def test_sentence_pause(self) -> None:
        """Pauses should spread spare time over sentences, with a floor."""
        assert sentence_pause_seconds(10, 2) == 3.0
        assert sentence_pause_seconds(4, 3) == 0.5

    def test_ssml_structure(self) -> None:
        """SSML should wrap sentences with breaks and the prosody rate."""
        ssml = build_ssml("First point. Second point!", 10, VoiceConfig(speed="slow"))

        assert ssml.startswith("<speak>")
        assert ssml.endswith("</speak>")
        assert '<prosody rate="slow">' in ssml
        assert 'First point.<break time="3000ms"/>' in ssml
        assert 'Second point.<break time="3000ms"/>' in ssml

    def test_ssml_escapes_markup(self) -> None:
        """Script text should be XML-escaped."""
        ssml = build_ssml("Q&A with <guests>.", 10, VoiceConfig())

        assert "Q&amp;A with &lt;guests&gt;" in ssml

    def test_submission(self) -> None:
        """The narration submission should carry SSML and the plain script."""
        request = GenerationRequest(prompt="New gadgets launched.", topic="technology", duration_seconds=10)

        submission = build_narration_submission(request, key_prefix="technology/")

        assert submission.text_type == "ssml"
        assert submission.voice_id == "Matthew"
        assert submission.plain_text == "Welcome to today's technology update. New gadgets launched."
        assert submission.key_prefix == "technology/"
        assert submission.characters == len(submission.plain_text)


class TestSubtitles:
    """Tests for SRT generation."""

    def test_format_time(self) -> None:
        """Timestamps should use HH:MM:SS,mmm."""
        assert format_srt_time(0) == "00:00:00,000"
        assert format_srt_time(3_723_456) == "01:02:03,456"

    def test_even_split(self) -> None:
        """Sentences should share the duration evenly."""
        srt = build_srt("One. Two. Three.", 6)

        assert srt == (
            "1\n00:00:00,000 --> 00:00:02,000\nOne.\n"
            "\n"
            "2\n00:00:02,000 --> 00:00:04,000\nTwo.\n"
            "\n"
            "3\n00:00:04,000 --> 00:00:06,000\nThree.\n"
        )

    def test_uneven_durations_stay_contiguous(self) -> None:
        """Cue boundaries should be contiguous and end at the duration."""
        srt = build_srt("A. B. C.", 10)

        assert "00:00:00,000 --> 00:00:03,333" in srt
        assert "00:00:03,333 --> 00:00:06,666" in srt
        assert "00:00:06,666 --> 00:00:10,000" in srt

    def test_empty_script(self) -> None:
        """A script without sentences should produce no subtitles."""
        assert build_srt("  ... ", 10) == ""
