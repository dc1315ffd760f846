from __future__ import annotations

import pytest

from noboox.errors import InvalidCitation
from noboox.services.citations import (
    CitationPolicy,
    CitationResolver,
    cited_ids,
    parse_markers,
    resolve,
    usage_percent,
)
from tests.fakes import make_sources


def test_lists_and_ranges_expand_to_individual_ids():
    text = "Reefs [1] recover [2, 4] slowly [6-8]."

    index, usage = resolve(text, make_sources(10))

    assert set(index.resolved) == {"1", "2", "4", "6", "7", "8"}
    assert usage.total_citations == 6
    assert usage.distinct_citations == 6
    assert usage.source_usage_percent == 60


def test_total_and_distinct_counts_differ_on_repeats():
    index, usage = resolve("A [1]. B [1, 2]. C [1-3].", make_sources(4))

    assert usage.total_citations == 6
    assert usage.distinct_citations == 3
    assert usage.source_usage_percent == 75
    assert list(index.resolved) == ["1", "2", "3"]


def test_strict_policy_rejects_unknown_ids():
    with pytest.raises(InvalidCitation) as exc_info:
        CitationResolver(CitationPolicy.STRICT).resolve("See [3] and [99].", make_sources(10))

    assert exc_info.value.ids == ["99"]
    assert exc_info.value.status_code == 400
    assert exc_info.value.user_message == "Invalid citations used: [99]"


def test_lenient_policy_leaves_unknown_ids_unresolved():
    index, usage = CitationResolver(CitationPolicy.LENIENT).resolve(
        "See [3] and [99].", make_sources(10)
    )

    assert index.get("99") is None
    assert index.unresolved_ids == ("99",)
    assert usage.total_citations == 1


def test_zero_sources_yield_zero_percent():
    _, usage = resolve("Claims [1] and [2].", [])

    assert usage.source_usage_percent == 0
    assert usage.distinct_citations == 0


def test_usage_percent_rounds_half_up():
    assert usage_percent(5, 8) == 63
    assert usage_percent(1, 3) == 33
    assert usage_percent(2, 3) == 67
    assert usage_percent(0, 0) == 0


def test_marker_grammar_variants():
    markers = parse_markers("[ 3 ] [5 ,6] [9–7] [10 - 10] [x] [1-200] [2](link)")

    assert [m.ids for m in markers] == [
        ("3",),
        ("5", "6"),
        ("7", "8", "9"),
        ("10",),
        ("2",),
    ]
    assert markers[0].raw == "[ 3 ]"


def test_cited_ids_are_distinct_in_first_seen_order():
    assert cited_ids("[4] [2, 4] [1-2]") == ["4", "2", "1"]


def test_check_ids_validates_against_bare_id_set():
    resolver = CitationResolver(CitationPolicy.STRICT)

    usage = resolver.check_ids("Edited [1] and [2, 3].", ["1", "2", "3", "4"])
    assert usage.distinct_citations == 3
    assert usage.source_usage_percent == 75

    with pytest.raises(InvalidCitation) as exc_info:
        resolver.check_ids("Edited [1] and [5].", ["1", "2"])
    assert exc_info.value.ids == ["5"]


def test_strict_policy_rejects_ranges_too_wide_to_expand():
    resolver = CitationResolver(CitationPolicy.STRICT)

    with pytest.raises(InvalidCitation) as exc_info:
        resolver.resolve("Claims [1] and [11-60].", make_sources(10))
    assert exc_info.value.ids == ["11-60"]

    with pytest.raises(InvalidCitation) as exc_info:
        resolver.check_ids("Claims [60-1].", [str(i) for i in range(1, 11)])
    assert exc_info.value.ids == ["60-1"]


def test_lenient_policy_ignores_ranges_too_wide_to_expand():
    _, usage = resolve("Claims [1] and [11-60].", make_sources(10))

    assert usage.total_citations == 1
    assert usage.unresolved_ids == ()
