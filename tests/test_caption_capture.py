from meetlogger.services.caption_capture import (
    CaptionCaptureEngine,
    collapse_whitespace,
    compute_increment,
    parse_speaker,
)


def test_compute_increment_returns_appended_suffix():
    assert compute_increment("Hello", "Hello world") == "world"


def test_compute_increment_ignores_unchanged_and_empty():
    assert compute_increment("Hello", "Hello") is None
    assert compute_increment("Hello", "") is None


def test_compute_increment_reemits_replaced_block():
    assert compute_increment("Alice said hi", "Bob says bye") == "Bob says bye"


def test_collapse_whitespace_flattens_newlines():
    assert collapse_whitespace("  Alice\n\n said   hi \n") == "Alice said hi"


def test_increments_concatenate_to_final_text():
    snapshots = [
        "We",
        "We need",
        "We need to ship",
        "We need to ship the release",
        "We need to ship the release on Friday.",
    ]
    engine = CaptionCaptureEngine()
    increments = [inc.increment for inc in engine.stream(snapshots)]
    assert " ".join(increments).split() == snapshots[-1].split()


def test_noise_mutations_are_not_emitted():
    engine = CaptionCaptureEngine()
    assert engine.observe("Hello") is not None
    assert engine.observe("Hello   ") is None
    assert engine.observe("\n Hello \n") is None
    assert engine.observe("") is None
    assert engine.observe(None) is None
    assert engine.last_snapshot == "Hello"


def test_speaker_from_first_line_of_block():
    speaker, text = parse_speaker("Alice\nLet's start the review", "Alice Let's start the review")
    assert speaker == "Alice"
    assert text == "Let's start the review"


def test_speaker_line_keeps_suffix_increment():
    speaker, text = parse_speaker("Alice\nLet's start the review now", "now")
    assert speaker == "Alice"
    assert text == "now"


def test_speaker_from_colon_prefix():
    speaker, text = parse_speaker("田中：来週リリースします", "田中：来週リリースします")
    assert speaker == "田中"
    assert text == "来週リリースします"


def test_unknown_speaker_when_no_pattern():
    assert parse_speaker("just some words", "just some words") == (None, "just some words")


def test_overlong_prefix_is_not_a_speaker():
    block = "x" * 45 + ": text"
    speaker, text = parse_speaker(block, collapse_whitespace(block))
    assert speaker is None
    assert text == collapse_whitespace(block)


def test_engine_reports_speaker_and_text():
    engine = CaptionCaptureEngine()
    first = engine.observe("Alice\nHello team")
    assert first.speaker == "Alice"
    assert first.text == "Hello team"
    second = engine.observe("Alice\nHello team, quick update")
    assert second.increment == ", quick update"
    assert second.text == ", quick update"


def test_reset_starts_from_empty_snapshot():
    engine = CaptionCaptureEngine()
    engine.observe("Hello")
    engine.reset()
    assert engine.observe("Hello").increment == "Hello"
