from __future__ import annotations


def _rows(pairs):
    from title_id_resolver.schema import CandidateName

    return [CandidateName(external_id=i, name=n, provider_id="steam") for i, n in pairs]


def test_rank_matches_sorts_by_score_descending():
    from title_id_resolver.utils.matching import rank_matches

    rows = _rows([("1", "Super Mario Odyssey"), ("2", "Mario Kart 8 Deluxe"), ("3", "Mario Kart 8")])
    ranked = rank_matches("mario kart 8", rows)

    assert [r.title_id for r in ranked][:2] == ["3", "2"]
    assert ranked[0].score == 100
    assert all(a.score >= b.score for a, b in zip(ranked, ranked[1:]))
    assert ranked[0].normalized_title == "mario kart 8"
    assert ranked[0].query == "mario kart 8"


def test_rank_matches_keeps_candidate_order_on_ties():
    from title_id_resolver.utils.matching import rank_matches

    rows = _rows([("30", "Doom"), ("10", "DOOM"), ("20", "Doom (1993)"), ("40", "Quake")])
    ranked = rank_matches("doom", rows)

    assert [r.title_id for r in ranked[:3]] == ["30", "10", "20"]
    # Same input, same order.
    assert [r.title_id for r in rank_matches("doom", rows)] == [r.title_id for r in ranked]


def test_rank_matches_limit_and_injected_scorer():
    from title_id_resolver.utils.matching import rank_matches

    class ConstantScorer:
        def score(self, query, candidate):
            return 42

    rows = _rows([("1", "A"), ("2", "B"), ("3", "C")])
    ranked = rank_matches("x", rows, scorer=ConstantScorer(), limit=2)

    assert [r.title_id for r in ranked] == ["1", "2"]
    assert {r.score for r in ranked} == {42}
