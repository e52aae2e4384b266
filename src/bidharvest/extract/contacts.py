from __future__ import annotations

import re
from dataclasses import dataclass
from functools import partial

from .accessor import Element
from .fields import selector_strategies
from .labeled import LabeledValueExtractor
from .resolver import resolve

CONTAINER_SELECTORS: tuple[str, ...] = (
    ".contact-section",
    ".buyer-info",
    ".contact-information",
    "[data-contact]",
    ".procurement-officer",
    ".contact-details",
)
NAME_SELECTORS: tuple[str, ...] = (
    ".buyer-name",
    ".contact-name",
    "[data-buyer-name]",
    "[data-contact-name]",
    ".procurement-officer-name",
    ".officer-name",
)
EMAIL_SELECTORS: tuple[str, ...] = (
    ".buyer-email",
    ".contact-email",
    "[data-buyer-email]",
    "[data-contact-email]",
    'a[href^="mailto:"]',
)
PHONE_SELECTORS: tuple[str, ...] = (
    ".buyer-phone",
    ".contact-phone",
    "[data-buyer-phone]",
    "[data-contact-phone]",
    'a[href^="tel:"]',
)
NAME_LABELS = ("Contact Name", "Buyer Name", "Buyer", "Officer", "Name")
EMAIL_LABELS = ("Email", "E-mail", "Contact Email")
PHONE_LABELS = ("Phone", "Telephone", "Contact Phone", "Phone Number")

_MAILTO = re.compile(r"^mailto:", flags=re.IGNORECASE)
_TEL = re.compile(r"^tel:", flags=re.IGNORECASE)


@dataclass(slots=True)
class RawContact:
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class ContactExtractor:
    def __init__(self, labeled: LabeledValueExtractor | None = None) -> None:
        self.labeled = labeled or LabeledValueExtractor()

    def container(self, scope: Element) -> Element:
        for selector in CONTAINER_SELECTORS:
            found = scope.select_one(selector)
            if found is not None:
                return found
        return scope

    def extract(self, scope: Element) -> RawContact:
        context = self.container(scope)
        # Free text is too noisy for a bare "Name" label, so names only come from tables.
        name = resolve(
            [
                *selector_strategies(context, NAME_SELECTORS),
                *(partial(self.labeled.from_tables, context, label, NAME_LABELS) for label in NAME_LABELS),
            ]
        )
        email = resolve(
            [*selector_strategies(context, EMAIL_SELECTORS), lambda: self.labeled.extract(context, EMAIL_LABELS)]
        )
        phone = resolve(
            [*selector_strategies(context, PHONE_SELECTORS), lambda: self.labeled.extract(context, PHONE_LABELS)]
        )
        return RawContact(
            name=name,
            email=_MAILTO.sub("", email).split("?", 1)[0].strip() if email else None,
            phone=" ".join(_TEL.sub("", phone).split()) if phone else None,
        )
