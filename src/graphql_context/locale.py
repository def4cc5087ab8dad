"""Locale negotiation for a request."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Protocol

import structlog
from starlette.requests import cookie_parser

logger = structlog.get_logger(__name__)

LOCALE_HEADER = "locale"
LOCALE_COOKIE = "locale"

HtmlAttributeHook = Callable[[], Mapping[str, str]]


class HtmlAttributeSink(Protocol):
    def add_html_attribute_hook(self, hook: HtmlAttributeHook) -> None: ...


class RequestHtmlAttributes:
    """Attribute hooks registered for the HTML shell of a single response."""

    def __init__(self) -> None:
        self._hooks: list[HtmlAttributeHook] = []

    def add_html_attribute_hook(self, hook: HtmlAttributeHook) -> None:
        self._hooks.append(hook)

    def render(self) -> dict[str, str]:
        attributes: dict[str, str] = {}
        for hook in self._hooks:
            attributes.update(hook())
        return attributes


def parse_accept_language(value: str | None) -> list[str]:
    """Return language tags from an Accept-Language header, best first.

    Entries with ``q=0``, weights outside [0, 1] or unparsable weights are
    dropped; ties keep header order.
    """
    if not value:
        return []

    weighted: list[tuple[float, int, str]] = []
    for position, part in enumerate(value.split(",")):
        tag, *params = (piece.strip() for piece in part.split(";"))
        if not tag or tag == "*":
            continue
        quality = 1.0
        for param in params:
            name, _, raw = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(raw)
                except ValueError:
                    quality = 0.0
                if not 0.0 <= quality <= 1.0:
                    quality = 0.0
        if quality > 0:
            weighted.append((-quality, position, tag))

    return [tag for _, _, tag in sorted(weighted)]


class LocaleResolver:
    def __init__(self, default_locale: str = "en-US", available_locales: Sequence[str] = ()) -> None:
        self.default_locale = default_locale
        self.available_locales = list(available_locales)

    def _match(self, candidate: str) -> str | None:
        if not self.available_locales:
            return candidate
        lowered = candidate.lower()
        for locale in self.available_locales:
            if locale.lower() == lowered:
                return locale
        language = lowered.split("-")[0]
        for locale in self.available_locales:
            if locale.lower().split("-")[0] == language:
                return locale
        return None

    def _candidates(self, headers: Mapping[str, str]) -> Iterator[tuple[str, str]]:
        if headers.get(LOCALE_HEADER):
            yield "header", headers[LOCALE_HEADER]
        cookie_locale = cookie_parser(headers.get("cookie", "")).get(LOCALE_COOKIE)
        if cookie_locale:
            yield "cookie", cookie_locale
        for tag in parse_accept_language(headers.get("accept-language")):
            yield "browser", tag

    def resolve(self, headers: Mapping[str, str], user_locale: str | None = None) -> str:
        if user_locale:
            logger.debug("locale.resolved", locale=user_locale, method="user")
            return user_locale

        for method, candidate in self._candidates(headers):
            locale = self._match(candidate)
            if locale:
                logger.debug("locale.resolved", locale=locale, method=method)
                return locale

        logger.debug("locale.resolved", locale=self.default_locale, method="setting")
        return self.default_locale

    def register(self, sink: HtmlAttributeSink, locale: str) -> None:
        sink.add_html_attribute_hook(lambda: {"lang": locale})
