from lumina.processing.title_normalizer import normalize_title


def test_breaking_label_and_watch_suffix_are_stripped():
    raw = "Breaking: Local Council Approves New Park (WATCH)"
    assert normalize_title(raw) == "Local Council Approves New Park"


def test_colon_beyond_window_is_kept():
    raw = "Scientists working in three countries finally agree on one thing: coffee helps"
    assert normalize_title(raw) == raw


def test_colon_window_is_configurable():
    raw = "Exclusive report: Rivers recover"
    assert normalize_title(raw, colon_window=5) == raw
    assert normalize_title(raw, colon_window=45) == "Rivers recover"


def test_bracketed_cta_is_stripped():
    assert normalize_title("New vaccine trial results [LISTEN]") == "New vaccine trial results"


def test_mixed_case_parenthetical_is_kept():
    raw = "Mayor opens library (Updated)"
    assert normalize_title(raw) == raw


def test_whitespace_is_collapsed():
    assert normalize_title("  Solar   farm\n opens  ") == "Solar farm opens"


def test_title_is_never_emptied():
    assert normalize_title("Breaking:") == "Breaking:"
    assert normalize_title("(WATCH)") == "(WATCH)"


def test_empty_and_none():
    assert normalize_title("") == ""
    assert normalize_title(None) == ""


def test_idempotent():
    samples = [
        "Breaking: Local Council Approves New Park (WATCH)",
        "Live: Update: Storm hits coast (VIDEO)",
        "Watch: Opinion: Is it true? [READ MORE] (WATCH)",
        "A: B: C: D",
        "Plain title",
        "   ",
        "Breaking:",
        "Title with colon late in the sentence after many many words: yes",
    ]
    for title in samples:
        once = normalize_title(title)
        assert normalize_title(once) == once, title


def test_bracketed_acronyms_are_kept():
    assert normalize_title("Inflation Falls (UK)") == "Inflation Falls (UK)"
    assert normalize_title("Markets steady [AP]") == "Markets steady [AP]"
    assert normalize_title("Rocket launch today (WATCH LIVE)") == "Rocket launch today"
