"""
Screen layout for fixed-size character displays.

An alert string is wrapped into lines of at most ``max_chars_per_line``
characters and grouped into screens of exactly ``lines_per_screen`` lines.
When an alert needs more than one screen, every screen after the first opens
with "..." and every screen closes with an "(i/total)" counter, non-final
screens with "... (i/total)". Words are placed greedily first and the
decorations go where room is left: a word is never cut, dropped or moved to
make room for one. A closing tail that does not fit loses its "..." first,
then its counter.

Stripping the decorations (``strip_decorations``) gives back exactly the
words of the input. ``paginate`` checks this before returning and falls back
to the unformatted text if it ever fails.
"""

import logging
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import pytz

from bus_alerts.config import RenderConfig
from bus_alerts.models import Alert
from bus_alerts.normalize import normalize

log = logging.getLogger(__name__)

Screen = List[str]

ELLIPSIS = "..."


# -------------------------
# Line filling
# -------------------------
def _wrap(words: Sequence[str], width: int, lead: str = "") -> List[List[str]]:
    """
    Greedy fill. Returns the words of each line.

    `lead` is glued to the first word of the first line when both fit;
    otherwise the first line holds the lead alone and comes back empty.
    A word wider than `width` gets a line to itself.
    """
    lines: List[List[str]] = [[]]
    length = len(lead)
    for word in words:
        line = lines[-1]
        if line:
            added = 1 + len(word)
            fits = length + added <= width
        else:
            added = len(word)
            fits = length == 0 or length + added <= width
        if fits:
            line.append(word)
            length += added
        else:
            lines.append([word])
            length = len(word)
    return lines


def _render(lines: List[List[str]], lead: str = "") -> List[str]:
    out = [" ".join(line) for line in lines]
    if lead:
        out[0] = lead + out[0]
    return out


def _tail_options(lines: List[str], glued: str, alone: str, width: int, height: int) -> Iterator[List[str]]:
    last = lines[-1]
    if len(last) + len(glued) <= width:
        yield lines[:-1] + [last + glued]
    if len(lines) < height and len(alone) <= width:
        yield lines + [alone]


# -------------------------
# Screens
# -------------------------
def _split(
    words: Sequence[str], width: int, height: int, logger: logging.Logger = log
) -> List[Tuple[List[str], List[str]]]:
    """
    Greedy placement of words onto screens, leads included.
    Returns each screen's rendered lines and the words it holds.
    """
    screens: List[Tuple[List[str], List[str]]] = []
    pos = 0
    while pos < len(words):
        lead = ELLIPSIS if screens else ""
        lines = _wrap(words[pos:], width, lead)
        if lead and not lines[0] and (height == 1 or width < len(lead)):
            # No room for a line holding only "...".
            if words[pos].startswith(ELLIPSIS):
                # Without a lead this word would read as one, so glue it anyway.
                logger.warning(
                    "continuation ellipsis pushes %r past line width %d",
                    words[pos],
                    width,
                    extra={"word_length": len(words[pos]), "max_chars_per_line": width},
                )
                lines = [[words[pos]]] + (_wrap(words[pos + 1:], width) if pos + 1 < len(words) else [])
            else:
                lead = ""
                lines = _wrap(words[pos:], width)
        lines = lines[:height]
        held = list(words[pos: pos + sum(len(line) for line in lines)])
        screens.append((_render(lines, lead), held))
        pos += len(held)
    return screens


def _decorate(lines: List[str], held: List[str], index: int, total: int, width: int, height: int) -> List[str]:
    """
    Add the closing "... (i/k)" where it fits, else "(i/k)" alone, else
    nothing. A tail that would change how the screen strips is skipped.
    """
    counter = f"({index}/{total})"
    tails = [(f" {counter}", counter)]
    if index < total:
        tails.insert(0, (f"{ELLIPSIS} {counter}", f"{ELLIPSIS} {counter}"))

    for glued, alone in tails:
        for placed in _tail_options(lines, glued, alone, width, height):
            if _strip_screen(placed, index, total) == held:
                return placed
    return lines


def _pad(lines: List[str], height: int) -> Screen:
    return lines + [""] * (height - len(lines))


def _strip_screen(screen: Sequence[str], index: int, total: int) -> List[str]:
    lines = [line for line in screen if line]
    if total > 1 and lines:
        if index > 1 and lines[0].startswith(ELLIPSIS):
            lines[0] = lines[0][len(ELLIPSIS):]
        counter = f"({index}/{total})"
        last = lines[-1]
        if last.endswith(counter):
            last = last[: -len(counter)].rstrip(" ")
            if index < total and last.endswith(ELLIPSIS):
                last = last[: -len(ELLIPSIS)]
            lines[-1] = last
    return [word for line in lines for word in line.split()]


def strip_decorations(screens: Sequence[Screen]) -> List[str]:
    """Words of a screen group with its ellipses and counters removed."""
    words: List[str] = []
    for index, screen in enumerate(screens, 1):
        words.extend(_strip_screen(screen, index, len(screens)))
    return words


def paginate(
    text: str,
    max_chars_per_line: int,
    lines_per_screen: int,
    logger: Optional[logging.Logger] = None,
) -> List[Screen]:
    """
    Lay `text` out as a group of screens, each exactly `lines_per_screen`
    lines long. Returns [] for blank text.
    """
    logger = logger or log
    width, height = max_chars_per_line, lines_per_screen
    if width <= 0 or height <= 0:
        raise ValueError("max_chars_per_line and lines_per_screen must be positive")

    words = text.split()
    if not words:
        return []

    for word in words:
        if len(word) > width:
            logger.warning(
                "word of %d chars exceeds line width %d, keeping it whole",
                len(word),
                width,
                extra={"word_length": len(word), "max_chars_per_line": width},
            )

    plain = _wrap(words, width)
    if len(plain) <= height:
        screens = [_render(plain)]
    else:
        laid = _split(words, width, height, logger)
        screens = [
            _decorate(lines, held, index, len(laid), width, height)
            for index, (lines, held) in enumerate(laid, 1)
        ]

    screens = [_pad(lines, height) for lines in screens]

    if strip_decorations(screens) != words:
        logger.error(
            "layout lost or reordered words, returning text unformatted",
            extra={"max_chars_per_line": width, "lines_per_screen": height},
        )
        return [_pad([text.strip()], height)]

    return screens


# -------------------------
# Many alerts
# -------------------------
def limit_screen_groups(groups: Iterable[List[Screen]], max_total_screens: Optional[int]) -> List[Screen]:
    """
    Flatten screen groups, stopping at the first group that does not fit
    whole in what is left of `max_total_screens`.
    """
    out: List[Screen] = []
    for group in groups:
        if max_total_screens is not None and len(out) + len(group) > max_total_screens:
            log.debug(
                "screen budget %d reached, leaving out a %d-screen alert",
                max_total_screens,
                len(group),
            )
            break
        out.extend(group)
    return out


def paginate_alerts(
    alerts: Iterable[Alert],
    config: RenderConfig,
    tz=pytz.utc,
    logger: Optional[logging.Logger] = None,
) -> List[Screen]:
    texts = [t for t in (normalize(a, tz) for a in alerts) if t]
    if config.max_alerts is not None:
        texts = texts[: config.max_alerts]

    groups = [paginate(t, config.max_chars_per_line, config.lines_per_screen, logger) for t in texts]
    return limit_screen_groups(groups, config.max_total_screens)
