import pytest

from docgate.services.error_translator import DEFAULT_ERROR_TABLE, ErrorEntry, ErrorTranslator


@pytest.fixture
def translator():
    return ErrorTranslator()


def test_exact_match(translator):
    result = translator.translate("no face detected")
    assert result.code == "FACE_DET_001"
    assert result.user_message == "No face found in the image"
    assert result.suggestion == "Please ensure your face is clearly visible in the image"
    assert result.technical_message == "no face detected"


def test_case_insensitive_substring_matches_same_entry(translator):
    exact = translator.translate("document not detected")
    fuzzy = translator.translate("Document NOT Detected")
    assert fuzzy.code == exact.code == "ID_CROP_003"
    assert fuzzy.user_message == exact.user_message

    wrapped = translator.translate("Error: document not detected in frame 2")
    assert wrapped.code == "ID_CROP_003"


def test_domain_phrase_wins_over_generic(translator):
    # Contains both "server error" and "qr code damaged".
    result = translator.translate("QR code damaged (server error upstream)")
    assert result.code == "QR_002"


def test_fallback(translator):
    result = translator.translate("the model exploded")
    assert result.code == "GEN_UNKNOWN"
    assert result.user_message == "Processing failed"
    assert result.suggestion == "Try again or contact support"
    assert result.technical_message == "the model exploded"


def test_empty_message_falls_back(translator):
    assert translator.translate("").code == "GEN_UNKNOWN"
    assert translator.translate(None).code == "GEN_UNKNOWN"


def test_every_code_is_reachable_by_its_phrase(translator):
    for domain in DEFAULT_ERROR_TABLE.values():
        for phrase, entry in domain.items():
            assert translator.translate(phrase.upper()).code == entry.code


def test_envelope_keys(translator):
    body = translator.translate("timeout").to_dict()
    assert body == {
        "userMessage": "Request timed out",
        "technicalMessage": "timeout",
        "suggestion": "Please try again later",
        "code": "GEN_002",
    }


def test_extra_entries_without_touching_defaults():
    extended = ErrorTranslator(extra={
        "barcode": {"Barcode unreadable": ErrorEntry("Barcode could not be read", "Retake the photo", "BAR_001")},
    })
    assert extended.translate("barcode unreadable at edge").code == "BAR_001"
    assert ErrorTranslator().translate("barcode unreadable").code == "GEN_UNKNOWN"

    phrases = [phrase for phrase, _ in extended]
    assert phrases[-1] == "barcode unreadable"
    assert len(phrases) == len(list(ErrorTranslator())) + 1


def test_table_is_read_only():
    with pytest.raises(TypeError):
        DEFAULT_ERROR_TABLE["face"]["new phrase"] = ErrorEntry("a", "b", "c")
    with pytest.raises(Exception):
        DEFAULT_ERROR_TABLE["face"]["no face detected"].code = "CHANGED"
