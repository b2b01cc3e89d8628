"""
BloodLink configuration
Every setting can be overridden through an environment variable of the same name
"""
import os


def _env_flag(name, default):
    return os.environ.get(name, default) in ('1', 'true', 'True', 'yes', 'on')


def _env_list(name, default):
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(',') if item.strip()]


BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'bloodlink-dev-key')
    DEBUG = _env_flag('DEBUG', '0')

    # ============== PERSISTENCE ==============
    DATA_DIR = os.environ.get('DATA_DIR', os.path.join(BASE_DIR, 'data'))
    # Unset file paths resolve inside DATA_DIR (see data_path)
    USERS_FILE = os.environ.get('USERS_FILE')
    CACHE_FILE = os.environ.get('CACHE_FILE')
    SEED_FILE = os.environ.get('SEED_FILE')
    IMPORT_SEED = _env_flag('IMPORT_SEED', '1')

    # ============== GEOCODING (Nominatim) ==============
    NOMINATIM_URL = os.environ.get('NOMINATIM_URL', 'https://nominatim.openstreetmap.org/search')
    # Nominatim's usage policy requires an identifying User-Agent
    NOMINATIM_USER_AGENT = os.environ.get('NOMINATIM_USER_AGENT', 'BloodLink/1.0 (contact@example.com)')
    NOMINATIM_TIMEOUT = float(os.environ.get('NOMINATIM_TIMEOUT', '15'))
    NOMINATIM_MIN_INTERVAL = float(os.environ.get('NOMINATIM_MIN_INTERVAL', '1.1'))
    GEOCODE_COUNTRY_CODE = os.environ.get('GEOCODE_COUNTRY_CODE', 'in')
    GEOCODE_COUNTRY = os.environ.get('GEOCODE_COUNTRY', 'India')
    GEOCODE_LANGUAGE = os.environ.get('GEOCODE_LANGUAGE', 'en')
    GEOCODE_REGIONS = _env_list('GEOCODE_REGIONS', 'Tamil Nadu')

    # ============== MATCHING ==============
    NEAREST_LIMIT = int(os.environ.get('NEAREST_LIMIT', '5'))

    # ============== SERVER ==============
    HOST = os.environ.get('HOST', '127.0.0.1')
    PORT = int(os.environ.get('PORT', '3000'))
    AUTO_OPEN_BROWSER = _env_flag('AUTO_OPEN_BROWSER', '0')
    CORS_ENABLED = _env_flag('CORS_ENABLED', '1')
    CORS_ORIGINS = _env_list('CORS_ORIGINS', '*')


DEFAULT_FILE_NAMES = {
    'USERS_FILE': 'users.json',
    'CACHE_FILE': 'geo-cache.json',
    'SEED_FILE': 'seed-users.json',
}


def data_path(config, key):
    """Resolve a *_FILE setting, falling back to its default name inside DATA_DIR"""
    return config.get(key) or os.path.join(config['DATA_DIR'], DEFAULT_FILE_NAMES[key])
