from organlink.matching.ranking import MAX_MATCHES, ScoredCandidate, rank_candidates

from conftest import make_donor


def _candidate(donor_id, probability):
    return ScoredCandidate(donor=make_donor(donor_id, 1980), probability=probability)


def test_threshold_and_descending_order():
    ranked = rank_candidates([_candidate("D0", 0.9), _candidate("D1", 0.3), _candidate("D2", 0.7)], 0.6)
    assert [(c.donor.id, c.probability) for c in ranked] == [("D0", 0.9), ("D2", 0.7)]


def test_threshold_is_inclusive():
    assert [c.donor.id for c in rank_candidates([_candidate("D0", 0.6)], 0.6)] == ["D0"]


def test_ties_break_on_donor_id():
    ranked = rank_candidates([_candidate("D9", 0.8), _candidate("D1", 0.8), _candidate("D5", 0.8)], 0.5)
    assert [c.donor.id for c in ranked] == ["D1", "D5", "D9"]


def test_result_is_capped():
    candidates = [_candidate(f"D{i:02d}", 0.5 + i / 100) for i in range(25)]
    ranked = rank_candidates(candidates, 0.5)
    assert len(ranked) == MAX_MATCHES
    assert ranked[0].donor.id == "D24"
    assert len(rank_candidates(candidates, 0.5, limit=50)) == MAX_MATCHES
    assert len(rank_candidates(candidates, 0.5, limit=3)) == 3


def test_nothing_above_threshold():
    assert rank_candidates([_candidate("D0", 0.1)], 0.6) == []
