"""
Blood group compatibility and nearest-donor ranking
"""
import math

BLOOD_GROUPS = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')

EARTH_RADIUS_KM = 6371.0

# ============== BLOOD COMPATIBILITY MATRIX ==============
# Who can RECEIVE FROM whom (Recipient Blood Group -> Donor Blood Groups)
RECEIVE_COMPATIBILITY = {
    'A+': frozenset({'A+', 'A-', 'O+', 'O-'}),
    'A-': frozenset({'A-', 'O-'}),
    'B+': frozenset({'B+', 'B-', 'O+', 'O-'}),
    'B-': frozenset({'B-', 'O-'}),
    'AB+': frozenset(BLOOD_GROUPS),  # Universal recipient
    'AB-': frozenset({'A-', 'B-', 'AB-', 'O-'}),
    'O+': frozenset({'O+', 'O-'}),
    'O-': frozenset({'O-'}),
}


def get_compatible_donor_blood_groups(recipient_blood_group):
    """
    Donor blood groups a recipient may accept
    Example: For A+ recipient, returns {'A+', 'A-', 'O+', 'O-'}
    """
    return RECEIVE_COMPATIBILITY.get(recipient_blood_group, frozenset())


def haversine_km(lat1, lon1, lat2, lon2):
    """Great-circle distance in kilometres"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def has_location(user):
    """True when both coordinates are finite numbers"""
    return all(
        isinstance(user.get(axis), (int, float)) and math.isfinite(user[axis])
        for axis in ('lat', 'lon')
    )


def rank_donors(requester, pool):
    """
    Rank compatible donors by distance from the requester.

    Skips the requester, incompatible groups and anyone without coordinates.
    Returns (user, distance_km) pairs nearest first; equal distances keep
    pool order. A requester without coordinates gets an empty ranking.
    """
    if not has_location(requester):
        return []

    acceptable = get_compatible_donor_blood_groups(requester.get('bloodGroup'))
    ranked = [
        (donor, haversine_km(requester['lat'], requester['lon'], donor['lat'], donor['lon']))
        for donor in pool
        if donor.get('id') != requester.get('id')
        and donor.get('bloodGroup') in acceptable
        and has_location(donor)
    ]
    ranked.sort(key=lambda pair: pair[1])
    return ranked
