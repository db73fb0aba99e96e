"""Named theme presets a generation request may refer to instead of a full theme."""
import copy
from typing import Any, Dict

DEFAULT_THEME_NAME = "minimal"

THEME_PRESETS: Dict[str, Dict[str, Any]] = {
    "minimal": {
        "name": "minimal",
        "colors": {
            "primary": "#3b82f6",
            "secondary": "#64748b",
            "background": "#ffffff",
            "surface": "#f8fafc",
            "text": "#1e293b",
            "accent": "#0ea5e9",
        },
        "fonts": {"heading": "Inter", "body": "Inter"},
        "spacing": "comfortable",
    },
    "modern": {
        "name": "modern",
        "colors": {
            "primary": "#8b5cf6",
            "secondary": "#ec4899",
            "background": "#0f172a",
            "surface": "#1e293b",
            "text": "#f1f5f9",
            "accent": "#06b6d4",
        },
        "fonts": {"heading": "Inter", "body": "Inter"},
        "spacing": "spacious",
    },
    "professional": {
        "name": "professional",
        "colors": {
            "primary": "#1f2937",
            "secondary": "#4b5563",
            "background": "#ffffff",
            "surface": "#f9fafb",
            "text": "#111827",
            "accent": "#3b82f6",
        },
        "fonts": {"heading": "Georgia", "body": "Inter"},
        "spacing": "comfortable",
    },
    "creative": {
        "name": "creative",
        "colors": {
            "primary": "#f59e0b",
            "secondary": "#ef4444",
            "background": "#fef7ed",
            "surface": "#fff7ed",
            "text": "#451a03",
            "accent": "#10b981",
        },
        "fonts": {"heading": "Playfair Display", "body": "Source Sans Pro"},
        "spacing": "spacious",
    },
    "light": {
        "name": "light",
        "colors": {
            "primary": "#2563eb",
            "secondary": "#6b7280",
            "background": "#ffffff",
            "surface": "#f3f4f6",
            "text": "#111827",
            "accent": "#f59e0b",
        },
        "fonts": {"heading": "Inter", "body": "Inter"},
        "spacing": "comfortable",
    },
    "dark": {
        "name": "dark",
        "colors": {
            "primary": "#60a5fa",
            "secondary": "#9ca3af",
            "background": "#111827",
            "surface": "#1f2937",
            "text": "#f9fafb",
            "accent": "#fbbf24",
        },
        "fonts": {"heading": "Inter", "body": "Inter"},
        "spacing": "comfortable",
    },
}

# "system" follows the viewer's OS; the stored palette is the light one.
THEME_PRESETS["system"] = dict(copy.deepcopy(THEME_PRESETS["light"]), name="system")


def get_theme_preset(name: str) -> Dict[str, Any]:
    """Return a deep copy of a preset, raising KeyError for unknown names."""
    return copy.deepcopy(THEME_PRESETS[name.lower()])
