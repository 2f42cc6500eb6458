"""
Configuration settings for the gradebook app.

These values can be overridden in Django settings by prefixing with GRADEBOOK_.
For example, to fail on inconsistent snapshots instead of warning:
    GRADEBOOK_STRICT_INTEGRITY = True

All configuration values are lazily loaded to avoid Django setup issues.
"""


def _get_setting(name, default):
    """Get a gradebook setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'GRADEBOOK_{name}', default)


# Define defaults as constants for direct use when Django settings are not needed
_DEFAULTS = {
    # Common scale every grade is normalized to
    'SCORE_SCALE': 20,

    # Rounding applied to averages on report cards
    'DISPLAY_DECIMALS': 2,

    # Places averages are rounded to (half-up) before ranking
    'RANKING_DECIMALS': 10,

    # Raise DataIntegrityError instead of collecting warnings
    'STRICT_INTEGRITY': False,

    # Attendance windows
    'ATTENDANCE_WEEK_DAYS': 7,
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    This avoids Django setup issues during module import.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


# Module-level proxy object for attribute access
_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
