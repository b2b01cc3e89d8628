"""
BloodLink - Nearest Blood Donor Finder
Flask Backend Application
Registers users at geocoded addresses and finds the nearest compatible donor
"""

import logging
import os
import webbrowser

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from compatibility import BLOOD_GROUPS, rank_donors
from config import Config, data_path
from errors import BadRequest, Conflict, GeocodeNotFound, NotFound, Unauthorized, register_error_handlers
from geocoding import GeocodingPipeline
from storage import GeocodeCache, UserDirectory, load_json_file, public_user

api = Blueprint('api', __name__, url_prefix='/api')

REGISTER_FIELDS = ('name', 'email', 'password', 'bloodGroup', 'address')


def create_app(config_overrides=None, geocoder=None, session=None):
    """
    Build the application and its stores.

    ``geocoder`` replaces the Nominatim-backed pipeline (anything with a
    ``resolve(address)`` method); ``session`` replaces the HTTP session used
    by the default pipeline.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)
    register_error_handlers(app)

    app.users = UserDirectory(data_path(app.config, 'USERS_FILE'))
    app.geocode_cache = GeocodeCache(data_path(app.config, 'CACHE_FILE'))
    app.geocoder = geocoder or GeocodingPipeline.from_config(app.config, app.geocode_cache, session=session)

    app.register_blueprint(api)

    # Browser clients are served from a different origin
    if app.config['CORS_ENABLED']:
        CORS(app, origins=app.config['CORS_ORIGINS'])

    if app.config['IMPORT_SEED']:
        import_seed_if_empty(app)

    return app


def _configure_logging(app):
    """Simple readable log format; DEBUG level when the app runs in debug mode"""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if app.config.get('DEBUG') else logging.INFO)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


# ============== HELPER FUNCTIONS ==============

def normalize_blood_group(value):
    """Canonical blood group ('ab+' -> 'AB+'); raises BadRequest for unknown groups"""
    group = str(value or '').strip().upper()
    if group not in BLOOD_GROUPS:
        raise BadRequest(f"bloodGroup must be one of {', '.join(BLOOD_GROUPS)}",
                         details={'bloodGroup': value})
    return group


def new_user_fields(data, geo):
    return {
        'name': data['name'],
        'email': data['email'],
        'passwordHash': data['password'],
        'bloodGroup': normalize_blood_group(data['bloodGroup']),
        'phone': data.get('phone') or '',
        'addressRaw': str(data['address']).strip(),
        'addressNormalized': geo.address_normalized,
        'lat': geo.lat,
        'lon': geo.lon,
        'lastDonatedAt': None,
    }


def missing_fields(data, fields):
    return [f for f in fields if not str(data.get(f) or '').strip()]


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("JSON object expected")
    return data


def donor_summary(donor, km, address=False):
    summary = {
        'id': donor['id'],
        'name': donor.get('name'),
        'bloodGroup': donor.get('bloodGroup'),
        'km': round(km, 2),
    }
    if address:
        summary['address'] = donor.get('addressNormalized')
    return summary


def import_seed_if_empty(app):
    """Register the seed users once, only while the user store is empty"""
    seed_path = data_path(app.config, 'SEED_FILE')
    if len(app.users) or not os.path.exists(seed_path):
        return 0

    seed = load_json_file(seed_path, [])
    if not isinstance(seed, list):
        app.logger.warning("Seed file %s is not a JSON array; skipping", seed_path)
        return 0

    imported = 0
    for entry in seed:
        if not isinstance(entry, dict) or missing_fields(entry, REGISTER_FIELDS):
            app.logger.warning("Skipping incomplete seed entry: %r", entry)
            continue
        if str(entry['bloodGroup']).strip().upper() not in BLOOD_GROUPS:
            app.logger.warning("Skipping seed entry %s: unknown blood group", entry['email'])
            continue
        if app.users.find_by_email(entry['email']):
            continue
        try:
            geo = app.geocoder.resolve(entry['address'])
        except GeocodeNotFound:
            app.logger.warning("Skipping seed entry %s: address did not geocode", entry['email'])
            continue
        app.users.insert(new_user_fields(entry, geo))
        imported += 1

    app.logger.info("Imported %d seed users from %s", imported, seed_path)
    return imported


# ============== API ROUTES ==============

@api.route('/health')
def health():
    return jsonify({'ok': True, 'users': len(current_app.users)})


@api.route('/register', methods=['POST'])
def register():
    """Register a user; refused outright when the address cannot be geocoded"""
    data = json_body()
    missing = missing_fields(data, REGISTER_FIELDS)
    if missing:
        raise BadRequest("name, email, password, bloodGroup, address are required",
                         details={'missing': missing})
    normalize_blood_group(data['bloodGroup'])

    users = current_app.users
    if users.find_by_email(data['email']):
        # checked again under the store lock on insert
        raise Conflict("Email already exists")

    geo = current_app.geocoder.resolve(data['address'])
    user = users.insert(new_user_fields(data, geo))

    current_app.logger.info("New user registered: %s (%s)", user['id'], user['bloodGroup'])
    return jsonify({'ok': True, 'user': public_user(user)})


@api.route('/login', methods=['POST'])
def login():
    """Plaintext credential check"""
    data = json_body()
    user = current_app.users.find_by_email(data.get('email'))
    if not user or user.get('passwordHash') != data.get('password'):
        raise Unauthorized("Invalid credentials")
    return jsonify({'ok': True, 'userId': user['id']})


@api.route('/users/<user_id>', methods=['GET'])
def get_user(user_id):
    user = current_app.users.get(user_id)
    return jsonify({'ok': True, 'user': public_user(user)})


@api.route('/users/<user_id>', methods=['PUT'])
def update_user(user_id):
    """
    Update profile fields
    The address is re-geocoded only when it changed; if that fails nothing is saved
    """
    users = current_app.users
    user = users.get(user_id)
    data = json_body()

    changes = {}
    for field in ('name', 'phone'):
        if field in data:
            changes[field] = data[field]
    if 'bloodGroup' in data:
        changes['bloodGroup'] = normalize_blood_group(data['bloodGroup'])

    address = data.get('address')
    if isinstance(address, str) and address.strip() and address.strip() != user.get('addressRaw'):
        geo = current_app.geocoder.resolve(address)
        changes.update({
            'addressRaw': address.strip(),
            'addressNormalized': geo.address_normalized,
            'lat': geo.lat,
            'lon': geo.lon,
        })

    user = users.update(user_id, changes)
    current_app.logger.info("User %s updated: %s", user_id, ', '.join(sorted(changes)) or 'no changes')
    return jsonify({'ok': True, 'user': public_user(user)})


@api.route('/nearest')
def nearest():
    """Nearest compatible donors for a given userId"""
    user_id = request.args.get('userId')
    me = current_app.users.find_by_id(user_id) if user_id else None
    if not me:
        raise NotFound("Requesting user not found")

    limit = request.args.get('limit', default=current_app.config['NEAREST_LIMIT'], type=int)
    if limit is None or limit < 1:
        raise BadRequest("limit must be a positive integer")

    ranked = rank_donors(me, current_app.users.all())
    if not ranked:
        return jsonify({'ok': True, 'nearest': None, 'message': 'No compatible donors yet'})

    top, top_km = ranked[0]
    return jsonify({
        'ok': True,
        'me': {
            'id': me['id'],
            'name': me.get('name'),
            'bloodGroup': me.get('bloodGroup'),
            'lat': me.get('lat'),
            'lon': me.get('lon'),
        },
        'nearest': donor_summary(top, top_km, address=True),
        'top5': [donor_summary(donor, km) for donor, km in ranked[:limit]],
    })


# ============== MAIN ==============

if __name__ == '__main__':
    app = create_app()
    url = f"http://{app.config['HOST']}:{app.config['PORT']}/api/health"
    app.logger.info("API server running at %s", url)
    if app.config['AUTO_OPEN_BROWSER']:
        webbrowser.open(url)
    app.run(debug=app.config['DEBUG'], host=app.config['HOST'], port=app.config['PORT'])
