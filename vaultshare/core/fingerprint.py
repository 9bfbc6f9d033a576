from .credentials import hash_token

# Checked in order: Edge and Opera UAs also carry "Chrome/" and "Safari/",
# Android UAs also carry "Linux", iOS UAs also carry "Mac OS X".
_BROWSERS = (
    ('Edg/', 'Edge'),
    ('Edge/', 'Edge'),
    ('OPR/', 'Opera'),
    ('Opera/', 'Opera'),
    ('Firefox/', 'Firefox'),
    ('Chrome/', 'Chrome'),
    ('Safari/', 'Safari'),
)
_OPERATING_SYSTEMS = (
    ('Windows', 'Windows'),
    ('Android', 'Android'),
    ('iPhone', 'iOS'),
    ('iPad', 'iOS'),
    ('Mac', 'Mac'),
    ('Linux', 'Linux'),
)


def generate_device_fingerprint(user_agent: str, client_hints: str) -> str:
    """Deterministic one-way fingerprint of a device's User-Agent and client hints."""
    return hash_token(f"{user_agent}|{client_hints}")


def parse_user_agent(user_agent: str) -> str:
    """Best-effort human label such as ``Chrome on Windows``."""
    user_agent = user_agent or ''
    browser = next((name for marker, name in _BROWSERS if marker in user_agent), 'Unknown Browser')
    os_name = next((name for marker, name in _OPERATING_SYSTEMS if marker in user_agent), 'Unknown OS')
    return f"{browser} on {os_name}"
