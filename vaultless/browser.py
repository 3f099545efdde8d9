"""
In-memory stand-ins for the browser side of the wire.

The broker only needs two things from a browser: "what URL is tab N on
right now?" and "please inject this into tab N". TabRegistry and
PageAgent provide both over a tiny form model, which is what the menu,
the attack demo and the tests drive.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import FillRefused
from .messages import Failure, FillCommand, Filled

logger = logging.getLogger(__name__)


class TabRegistry:
    """Tab id -> current URL."""

    def __init__(self):
        self._urls: Dict[int, str] = {}

    def open(self, tab_id: int, url: str) -> None:
        self._urls[tab_id] = url

    def navigate(self, tab_id: int, url: str) -> None:
        self._urls[tab_id] = url

    def close(self, tab_id: int) -> None:
        self._urls.pop(tab_id, None)

    def current_url(self, tab_id: int) -> str:
        return self._urls.get(tab_id, "")


# =============================================================================
# Form model
# =============================================================================

@dataclass
class FormField:
    name: str = ""
    autocomplete: str = ""
    value: str = ""

    @property
    def hint(self) -> str:
        hint = self.autocomplete
        if self.name:
            hint += f" ({self.name})"
        return hint.strip() or "password"


@dataclass
class FormPage:
    password_fields: List[FormField] = field(default_factory=list)
    username_field: Optional[FormField] = None
    top_level: bool = True

    def empty_password_fields(self) -> List[FormField]:
        return [f for f in self.password_fields if f.value == ""]


# =============================================================================
# Page agent
# =============================================================================

class PageAgent:
    """
    Injects passwords into the page loaded in a tab.

    Fill rules:
    - refuse inside frames and for commands without a trust tier
    - username goes into the username field only if it is empty
    - the first empty password field is filled; if it carries an
      autocomplete hint, the next empty field with the same hint (the
      "confirm" box) is filled too
    - the reply says how many password fields are still empty
    """

    def __init__(self):
        self.pages: Dict[int, FormPage] = {}
        self.received: List[FillCommand] = []

    def load(self, tab_id: int, page: FormPage) -> None:
        self.pages[tab_id] = page

    def describe(self, tab_id: int) -> Dict[str, object]:
        page = self.pages.get(tab_id) or FormPage()
        return {
            "username": page.username_field.value if page.username_field else "",
            "pw_fields": [f.hint for f in page.password_fields],
        }

    def highlight(self, tab_id: int) -> str:
        page = self.pages.get(tab_id) or FormPage()
        empty = page.empty_password_fields()
        target = empty[0] if empty else (page.password_fields[0] if page.password_fields else None)
        return target.hint if target else "password"

    def fill(self, tab_id: int, command: FillCommand):
        self.received.append(command)
        page = self.pages.get(tab_id) or FormPage()
        try:
            return self._fill(page, command)
        except FillRefused as e:
            logger.warning("Fill refused on tab %s: %s", tab_id, e.message)
            return Failure.from_error(e)

    def _fill(self, page: FormPage, command: FillCommand):
        if not page.top_level:
            raise FillRefused("Fill refused: Not in top-level frame.")
        if not command.trust:
            raise FillRefused("Fill refused: Context not vetted by policy engine.")

        user_field = page.username_field
        if user_field is not None and command.username and not user_field.value:
            user_field.value = command.username

        empty = page.empty_password_fields()
        if not empty:
            return Failure("no_empty_fields", "No empty password fields found.", remaining=0)

        targets = [empty[0]]
        ac = empty[0].autocomplete.lower()
        if ac:
            confirm = next((f for f in empty[1:] if f.autocomplete.lower() == ac), None)
            if confirm is not None:
                targets.append(confirm)

        for f in targets:
            f.value = command.password

        left = page.empty_password_fields()
        next_hint = (left[0].autocomplete or "password") if left else None
        logger.info("Filled %d field(s) in %s context; %d remaining",
                    len(targets), command.trust, len(left))
        return Filled(remaining=len(left), next_hint=next_hint)
