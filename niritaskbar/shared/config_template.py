default_config = {
    "_section_hint": (
        "Configuration for niritaskbar, the window and notification "
        "tracking core behind a niri taskbar."
    ),
    "apps": {
        "_section_hint": (
            "Per-application tagging rules. Each key is an application id "
            "holding a list of tables with a 'match' regular expression "
            "(tested against the window title) and a 'class' to apply when "
            "it matches, e.g. [[apps.firefox]] match = 'YouTube' class = 'video'."
        ),
    },
    "notifications": {
        "_section_hint": (
            "Correlating desktop notifications with the window that sent them."
        ),
        "enabled": True,
        "enabled_hint": "Watch the session bus for notifications.",
        "use_desktop_entry": True,
        "use_desktop_entry_hint": (
            "When the sending process cannot be matched to a window, fall back "
            "to the notification's desktop-entry hint. Less precise: every "
            "window of that application is flagged."
        ),
        "use_fuzzy_matching": False,
        "use_fuzzy_matching_hint": (
            "Let the desktop-entry fallback match application ids "
            "case-insensitively and by their last dot-separated segment."
        ),
        "map_app_ids": {},
        "map_app_ids_hint": (
            "Maps desktop entries to application ids for apps whose "
            "notifications name a different id than their windows."
        ),
        "cache_expiry_seconds": 300,
        "cache_expiry_seconds_hint": (
            "How long a resolved bus connection pid is remembered after its "
            "last use. Values below five minutes are unlikely to help."
        ),
        "cache_sweep_interval_seconds": 60,
        "cache_sweep_interval_seconds_hint": (
            "How often expired connection pids are removed."
        ),
    },
    "output": {
        "_section_hint": "Which output's windows are shown.",
        "only": "",
        "only_hint": (
            "Output name (e.g. DP-1) to restrict windows to. Empty shows "
            "windows on every output."
        ),
    },
}
