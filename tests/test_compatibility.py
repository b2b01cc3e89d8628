"""Tests for the compatibility table and distance ranking."""
import pytest

from compatibility import (
    BLOOD_GROUPS,
    RECEIVE_COMPATIBILITY,
    get_compatible_donor_blood_groups,
    haversine_km,
    rank_donors,
)

CHENNAI = (13.0827, 80.2707)
BENGALURU = (12.9716, 77.5946)


def user(user_id, group, coords=None):
    lat, lon = coords if coords else (None, None)
    return {'id': user_id, 'bloodGroup': group, 'lat': lat, 'lon': lon}


class TestCompatibilityTable:
    def test_every_group_present(self):
        assert set(RECEIVE_COMPATIBILITY) == set(BLOOD_GROUPS)

    def test_universal_donor(self):
        for group in BLOOD_GROUPS:
            assert 'O-' in RECEIVE_COMPATIBILITY[group]
        assert RECEIVE_COMPATIBILITY['O-'] == {'O-'}

    def test_universal_recipient(self):
        assert RECEIVE_COMPATIBILITY['AB+'] == set(BLOOD_GROUPS)

    def test_o_positive(self):
        assert RECEIVE_COMPATIBILITY['O+'] == {'O+', 'O-'}

    def test_negative_recipients_accept_only_negative_donors(self):
        for group in ('A-', 'B-', 'AB-', 'O-'):
            assert all(donor.endswith('-') for donor in RECEIVE_COMPATIBILITY[group])

    def test_unknown_group(self):
        assert get_compatible_donor_blood_groups('X') == frozenset()


class TestHaversine:
    def test_zero_distance(self):
        assert haversine_km(*CHENNAI, *CHENNAI) == 0

    def test_chennai_bengaluru(self):
        assert haversine_km(*CHENNAI, *BENGALURU) == pytest.approx(290.2, abs=1.0)

    def test_symmetric(self):
        assert haversine_km(*CHENNAI, *BENGALURU) == pytest.approx(haversine_km(*BENGALURU, *CHENNAI))


class TestRankDonors:
    def test_nearest_first(self):
        me = user('1', 'O+', CHENNAI)
        far = user('2', 'O+', BENGALURU)
        near = user('3', 'O-', CHENNAI)

        ranked = rank_donors(me, [me, far, near])

        assert [donor['id'] for donor, _ in ranked] == ['3', '2']
        assert ranked[0][1] == 0
        assert ranked[1][1] == pytest.approx(haversine_km(*CHENNAI, *BENGALURU))

    def test_filters_incompatible_and_unlocated(self):
        me = user('1', 'A-', CHENNAI)
        pool = [
            user('2', 'A+', CHENNAI),
            user('3', 'O-'),
            user('4', 'A-', BENGALURU),
        ]
        assert [donor['id'] for donor, _ in rank_donors(me, pool)] == ['4']

    def test_ties_keep_pool_order(self):
        me = user('1', 'AB+', CHENNAI)
        pool = [user(str(i), group, BENGALURU) for i, group in enumerate(BLOOD_GROUPS, start=2)]
        assert [donor['id'] for donor, _ in rank_donors(me, pool)] == [d['id'] for d in pool]

    def test_requester_without_location(self):
        me = user('1', 'AB+')
        assert rank_donors(me, [user('2', 'O-', CHENNAI)]) == []

    def test_non_finite_coordinates_are_unlocated(self):
        me = user('1', 'O-', CHENNAI)
        pool = [
            user('2', 'O-', (float('nan'), 80.27)),
            user('3', 'O-', (13.08, float('inf'))),
            user('4', 'O-', BENGALURU),
        ]
        assert [donor['id'] for donor, _ in rank_donors(me, pool)] == ['4']
        assert rank_donors(user('5', 'O-', (float('nan'), float('nan'))), pool) == []
