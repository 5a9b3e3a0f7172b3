SECTIONS = (
    ("dashboard", "Dashboard"),
    ("water", "Water"),
    ("habits", "Habits"),
    ("career", "Career"),
    ("health", "Health"),
    ("gym", "Gym"),
    ("reflections", "Reflections"),
)

DEFAULT_SECTION = "dashboard"
SECTION_IDS = tuple(section_id for section_id, _ in SECTIONS)


def resolve_section(section) -> str:
    """Unknown sections fall back to the dashboard."""
    return section if section in SECTION_IDS else DEFAULT_SECTION


class ViewShell:
    """Which tracker the navigation frame is showing."""

    def __init__(self, active_section: str = DEFAULT_SECTION):
        self.active_section = resolve_section(active_section)

    def select(self, section: str) -> str:
        self.active_section = resolve_section(section)
        return self.active_section

    @property
    def sections(self):
        return [{"id": section_id, "label": label} for section_id, label in SECTIONS]
