"""Fetching and printing the distribution's news feed."""

from __future__ import annotations

import html
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import requests

from . import text

NEWS_FEED_URL = "https://archlinux.org/feeds/news"


@dataclass
class NewsItem:
    """One entry of the news feed."""

    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""
    creator: str = ""

    def render(self, build_time: datetime | None, show_all: bool, quiet: bool) -> str:
        """The text printed for this item, or "" when it is older than build_time."""
        formatted_date = ""
        try:
            date = parsedate_to_datetime(self.pub_date)
            if date.tzinfo is None:
                raise ValueError(f"no time zone in date {self.pub_date!r}")
        except (TypeError, ValueError, IndexError) as exc:
            print(exc, file=sys.stderr)
        else:
            formatted_date = text.format_time(int(date.timestamp()))
            if not show_all and build_time is not None:
                if build_time.tzinfo is None:
                    build_time = build_time.replace(tzinfo=timezone.utc)
                if build_time > date:
                    return ""

        out = f"{text.bold(text.magenta(formatted_date))} {text.bold(self.title.strip())}\n"
        if not quiet:
            out += parse_news(self.description).strip() + "\n"
        return out


def _child_text(element: ET.Element, name: str) -> str:
    for child in element:
        if child.tag.rsplit("}", 1)[-1] == name:
            return child.text or ""
    return ""


def parse_feed(body: bytes | str) -> list[NewsItem]:
    """Parse an RSS document into its news items."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    root = ET.fromstring(body)
    channel = root.find("channel")
    if channel is None:
        return []
    return [
        NewsItem(
            title=_child_text(item, "title"),
            link=_child_text(item, "link"),
            description=_child_text(item, "description"),
            pub_date=_child_text(item, "pubDate"),
            creator=_child_text(item, "creator"),
        )
        for item in channel.findall("item")
    ]


def parse_news(content: str) -> str:
    """Crudely turn the feed's HTML into terminal text."""
    out: list[str] = []
    tag: list[str] = []
    escape: list[str] = []
    in_tag = in_escape = False

    for char in content:
        if in_tag:
            if char == ">":
                in_tag = False
                name = "".join(tag)
                if name == "code":
                    out.append(text.CYAN_CODE)
                elif name == "/code":
                    out.append(text.RESET_CODE)
                elif name == "/p":
                    out.append("\n")
            else:
                tag.append(char)
            continue

        if in_escape:
            escape.append(char)
            if char == ";":
                in_escape = False
                out.append(html.unescape("".join(escape)))
            continue

        if char == "<":
            in_tag = True
            tag = []
        elif char == "&":
            in_escape = True
            escape = [char]
        else:
            out.append(char)

    out.append(text.RESET_CODE)
    return "".join(out)


def print_news_feed(
    session: requests.Session,
    cut_off_date: datetime | None,
    bottom_up: bool,
    show_all: bool,
    quiet: bool,
) -> None:
    """Download the news feed and print the items newer than cut_off_date."""
    response = session.get(NEWS_FEED_URL)
    items = parse_feed(response.content)
    if bottom_up:
        items.reverse()
    for item in items:
        sys.stdout.write(item.render(cut_off_date, show_all, quiet))