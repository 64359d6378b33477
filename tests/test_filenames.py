from voice_backend.utils import build_audio_filename, is_safe_filename, slugify_label


def test_slugify_label_basic():
    assert slugify_label("Initial Reply") == "initial-reply"


def test_slugify_label_handles_empty():
    assert slugify_label(None) == ""
    assert slugify_label("") == ""
    assert slugify_label("!!!") == ""


def test_build_audio_filename_with_label():
    result = build_audio_filename("initial")
    assert result.startswith("initial-")
    assert result.endswith(".mp3")
    assert is_safe_filename(result)


def test_build_audio_filename_is_unique():
    assert build_audio_filename("final") != build_audio_filename("final")


def test_build_audio_filename_without_label():
    result = build_audio_filename(None, "wav")
    assert result.endswith(".wav")
    assert len(result) == 32 + len(".wav")


def test_is_safe_filename_rejects_traversal():
    assert not is_safe_filename("../secret.mp3")
    assert not is_safe_filename("a..b.mp3")
    assert not is_safe_filename(".hidden")
    assert not is_safe_filename("")
