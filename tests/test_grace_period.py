from datetime import timedelta

from gym_lifecycle.services.grace_period import GracePolicy, membership_grace, trainer_grace

from .conftest import DAY_START, NOW


def test_compute_grace_end_adds_grace_days():
    policy = GracePolicy(15, (7, 2, 1))
    assert policy.compute_grace_end(NOW) == NOW + timedelta(days=15)


def test_days_remaining_rounds_up():
    policy = GracePolicy(15, (7, 2, 1))
    assert policy.days_remaining(DAY_START + timedelta(days=7), DAY_START) == 7
    assert policy.days_remaining(DAY_START + timedelta(days=6, hours=1), DAY_START) == 7
    assert policy.days_remaining(DAY_START - timedelta(hours=1), DAY_START) == 0
    assert policy.days_remaining(None, DAY_START) is None


def test_milestone_fires_only_on_its_day():
    policy = GracePolicy(15, (7, 2, 1))
    fired = policy.milestones(DAY_START + timedelta(days=7), DAY_START)
    assert [m.days_remaining for m in fired] == [7]
    assert policy.milestones(DAY_START + timedelta(days=6), DAY_START) == []
    assert policy.milestones(DAY_START + timedelta(days=8), DAY_START) == []


def test_no_milestones_after_grace_end():
    policy = GracePolicy(15, (7, 2, 1))
    assert policy.milestones(DAY_START, DAY_START) == []
    assert policy.milestones(DAY_START - timedelta(days=2), DAY_START) == []
    assert policy.milestones(None, DAY_START) == []


def test_each_membership_milestone_fires_once_over_the_window():
    grace_end = DAY_START + timedelta(days=15)
    fired = []
    for day in range(16):
        fired += [m.days_remaining for m in membership_grace.milestones(grace_end, DAY_START + timedelta(days=day))]
    assert fired == [7, 2, 1]


def test_trainer_milestones():
    grace_end = DAY_START + timedelta(days=5)
    fired = []
    for day in range(6):
        fired += [m.days_remaining for m in trainer_grace.milestones(grace_end, DAY_START + timedelta(days=day))]
    assert fired == [3, 1]
    assert trainer_grace.grace_days == 5
