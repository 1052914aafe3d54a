from examprep.services.scoring import accuracy, score_percent


def test_score_percent():
    assert score_percent(7, 10) == 70.0
    assert score_percent(1, 3) == 33.33
    assert score_percent(2, 3) == 66.67
    assert score_percent(0, 5) == 0.0


def test_score_percent_zero_total_is_none():
    assert score_percent(0, 0) is None


def test_accuracy_guards_zero_attempts():
    assert accuracy(0, 0) == 0.0
    assert accuracy(3, 4) == 75.0
    assert 0 <= accuracy(5, 5) <= 100


def test_rounding_is_half_up():
    assert score_percent(1, 800) == 0.13
    assert score_percent(1, 8) == 12.5
    assert accuracy(1, 1600) == 0.06
