"""Tests for text rendering of LODA API responses."""

from loda_mcp.mcp_server.tools import formatting


def test_format_sequence(fibonacci):
    text = formatting.format_sequence(fibonacci)
    assert text.startswith("Sequence A000045: Fibonacci numbers")
    assert "Terms: 0, 1, 1, 2, 3, 5" in text
    assert "Keywords: core, nonn, easy, nice" in text


def test_format_sequence_truncates_terms():
    text = formatting.format_sequence({"id": "A000027", "name": "n", "terms": list(range(1, 30))})
    assert "Terms: 1, 2, 3" in text
    assert "20, ..." in text
    assert "21" not in text


def test_format_program_includes_code(fibonacci_program):
    text = formatting.format_program(fibonacci_program)
    assert "Program A000045: Fibonacci numbers" in text
    assert "Submitter: Christian Krause" in text
    assert "lpb $0" in text


def test_empty_search_renders_no_results():
    assert formatting.format_search_results("sequence(s)", "core", {"results": []}) == "No results found."
    assert formatting.format_search_results("sequence(s)", "core", {}) == "No results found."


def test_format_search_results():
    payload = {
        "total": 2,
        "results": [
            {"id": "A000045", "name": "Fibonacci numbers", "keywords": ["core"]},
            {"id": "A000032", "name": "Lucas numbers"},
        ],
    }
    text = formatting.format_search_results("sequence(s)", "fib", payload)
    assert text.splitlines() == [
        "Found 2 sequence(s) matching 'fib':",
        "- A000045: Fibonacci numbers [core]",
        "- A000032: Lucas numbers",
    ]


def test_format_eval_result_shows_all_terms():
    text = formatting.format_eval_result(
        "mov $0,1",
        {"status": "success", "terms": list(range(25))},
    )
    assert "Status: success" in text
    assert "Computed 25 term(s)" in text
    assert "24" in text


def test_format_stats_uses_thousands_separator():
    text = formatting.format_stats(
        {"numSequences": 380000, "numPrograms": 140123, "numFormulas": 95000}
    )
    assert "Sequences: 380,000" in text
    assert "Programs: 140,123" in text


def test_format_keywords_and_submitters():
    keywords = formatting.format_keywords(
        [{"name": "core", "description": "Important sequence", "numSequences": 180}]
    )
    assert "- core: Important sequence (180 sequences)" in keywords

    submitters = formatting.format_submitters([{"name": "Christian Krause", "numPrograms": 5000}])
    assert "- Christian Krause: 5000 program(s)" in submitters

    assert formatting.format_keywords([]) == "No results found."
