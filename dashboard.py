"""
GitHub Contributions Dashboard
Renders streaks, averages, a 14-day bar chart and a year heatmap in the terminal,
using the contribution calendar fetched through the `gh` CLI.
"""

import datetime
import json
import logging
import math
import os
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Optional

from dateutil import relativedelta
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

logger = logging.getLogger(__name__)

QUERY = """
query {
    viewer {
        login
        contributionsCollection {
            contributionCalendar {
                totalContributions
                weeks {
                    contributionDays {
                        date
                        contributionCount
                    }
                }
            }
        }
    }
}"""

# GitHub heatmap palette: no contributions, then Q1..Q4
HEATMAP_COLOURS = [
    (22, 27, 34),  # #161b22
    (14, 68, 41),  # #0e4429
    (0, 109, 50),  # #006d32
    (38, 166, 65),  # #26a641
    (57, 211, 83),  # #39d353
]
BAR_COLOUR = (38, 166, 65)

DEFAULT_QUARTILES = [1, 2, 3, 4]
DAYS_PER_MONTH = 30.44
DAYS_PER_QUARTER = 91.31

DEFAULT_WIDTH = 80
INDENT = 2
DAY_LABEL_WIDTH = 6
COL1_WIDTH = 24
COL2_WIDTH = 24
DAY_LABELS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
ALL_DAY_ROWS = [0, 1, 2, 3, 4, 5, 6]
COMPACT_DAY_ROWS = [1, 3, 5]  # Mon, Wed, Fri

FETCH_ERROR_MESSAGE = (
    "Failed to fetch GitHub data. Make sure `gh` is installed and authenticated."
)
FETCH_HINT_MESSAGE = "Run `gh auth login` to set up the GitHub CLI."


class GitHubCLIError(Exception):
    """Raised when the contribution calendar cannot be fetched or parsed"""


@dataclass(frozen=True)
class ContributionDay:
    date: datetime.date
    contribution_count: int


@dataclass(frozen=True)
class ContributionWeek:
    days: tuple


@dataclass(frozen=True)
class CalendarData:
    total_contributions: int
    weeks: tuple


@dataclass(frozen=True)
class GitHubData:
    login: str
    calendar: CalendarData


@dataclass(frozen=True)
class Averages:
    elapsed_days: int
    per_day: float
    per_week: float
    per_month: float
    per_quarter: float
    week_per_day: float
    month_per_day: float
    quarter_per_day: float


@dataclass(frozen=True)
class DashboardStats:
    today_count: int
    last_7_days: int
    best_day: Optional[ContributionDay]
    current_streak: int
    longest_streak: int
    averages: Averages


@dataclass(frozen=True)
class Config:
    """Runtime settings, overridable through GH_DASHBOARD_* environment variables"""

    gh_binary: str = "gh"
    timeout: float = 10.0
    max_width: int = 100
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ=None):
        """Build a Config from the environment, keeping defaults for bad values"""
        environ = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            gh_binary=environ.get("GH_DASHBOARD_GH") or defaults.gh_binary,
            timeout=_read_number(
                environ, "GH_DASHBOARD_TIMEOUT", defaults.timeout, float
            ),
            max_width=_read_number(
                environ, "GH_DASHBOARD_MAX_WIDTH", defaults.max_width, int
            ),
            log_level=environ.get("GH_DASHBOARD_LOG_LEVEL") or defaults.log_level,
        )


def _read_number(environ, name, default, convert):
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = convert(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r, using %s", name, raw, default)
        return default
    if not math.isfinite(value) or value <= 0:
        logger.warning(
            "Ignoring non-positive or non-finite %s=%r, using %s", name, raw, default
        )
        return default
    return value


def setup_logging(level_name):
    """Send log records to stderr so they never mix with the dashboard"""
    level = getattr(logging, str(level_name).upper(), None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


# Data fetching


def fetch_contributions(config):
    """Runs `gh api graphql` once and returns the parsed GitHubData"""
    command = [
        config.gh_binary,
        "api",
        "graphql",
        "-f",
        "query=" + " ".join(QUERY.split()),
    ]
    logger.debug("Running %s api graphql (timeout %ss)", config.gh_binary, config.timeout)
    start_time = time.perf_counter()
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=config.timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise GitHubCLIError(
            f"{config.gh_binary} timed out after {config.timeout}s"
        ) from exc
    except OSError as exc:
        raise GitHubCLIError(f"could not run {config.gh_binary}: {exc}") from exc

    logger.debug(
        "%s exited with status %s in %.2fs",
        config.gh_binary,
        result.returncode,
        time.perf_counter() - start_time,
    )
    if result.returncode != 0:
        raise GitHubCLIError(
            result.stderr.strip()
            or f"{config.gh_binary} exited with status {result.returncode}"
        )

    try:
        payload = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise GitHubCLIError("GitHub GraphQL response was not valid JSON") from exc

    return parse_payload(payload)


def parse_payload(payload):
    """Converts the raw GraphQL response into GitHubData"""
    if not isinstance(payload, dict):
        raise GitHubCLIError("GitHub GraphQL response is invalid")
    if payload.get("errors"):
        raise GitHubCLIError(f"GitHub API error: {payload['errors']}")

    try:
        viewer = payload["data"]["viewer"]
        calendar = viewer["contributionsCollection"]["contributionCalendar"]
        weeks = tuple(
            ContributionWeek(
                days=tuple(_parse_day(day) for day in week["contributionDays"])
            )
            for week in calendar["weeks"]
        )
        login = viewer["login"]
        total = int(calendar["totalContributions"])
    except (KeyError, TypeError, ValueError) as exc:
        raise GitHubCLIError(f"Unexpected GitHub response: {exc!r}") from exc

    if not isinstance(login, str):
        raise GitHubCLIError("GitHub response is missing the viewer login")
    return GitHubData(
        login=login, calendar=CalendarData(total_contributions=total, weeks=weeks)
    )


def _parse_day(raw):
    count = int(raw["contributionCount"])
    if count < 0:
        raise ValueError(f"negative contributionCount {count}")
    return ContributionDay(
        date=datetime.date.fromisoformat(raw["date"]), contribution_count=count
    )


# Data processing


def flatten_days(calendar):
    """All calendar days, oldest first"""
    return [day for week in calendar.weeks for day in week.days]


def calculate_streak(days, today):
    """
    Current streak: consecutive active days counting back from the most recent day.
    A zero count on today does not break the streak since the day is not over yet.
    """
    newest_first = sorted(days, key=lambda d: d.date, reverse=True)
    start_idx = 0
    if (
        newest_first
        and newest_first[0].date == today
        and newest_first[0].contribution_count == 0
    ):
        start_idx = 1

    streak = 0
    for day in newest_first[start_idx:]:
        if day.contribution_count > 0:
            streak += 1
        else:
            break
    return streak


def calculate_longest_streak(days):
    """Longest run of consecutive active days"""
    longest = 0
    current = 0
    for day in days:
        if day.contribution_count > 0:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def compute_quartiles(days):
    """Quartile edges of the nonzero daily counts, used to bucket heatmap cells"""
    non_zero = sorted(d.contribution_count for d in days if d.contribution_count > 0)
    if not non_zero:
        return list(DEFAULT_QUARTILES)

    n = len(non_zero)
    return [non_zero[int(n * 0.25)], non_zero[int(n * 0.5)], non_zero[int(n * 0.75)]]


def heatmap_level(count, quartiles):
    """Maps a count to an intensity level 0-4"""
    if count == 0:
        return 0
    if count <= quartiles[0]:
        return 1
    if count <= quartiles[1]:
        return 2
    if count <= quartiles[2]:
        return 3
    return 4


def best_day(days):
    """First day with the highest count, or None for an empty calendar"""
    best = None
    for day in days:
        if best is None or day.contribution_count > best.contribution_count:
            best = day
    return best


def _period_average(days, start, today):
    counts = [d.contribution_count for d in days if start <= d.date <= today]
    return sum(counts) / len(counts) if counts else 0.0


def compute_averages(days, total_contributions, today):
    """
    Averages over the year (scaled to week/month/quarter units) and per-day
    averages for the current week, month and quarter. Only days up to and
    including today are counted.
    """
    elapsed_days = len([d for d in days if d.date <= today])
    per_day = total_contributions / elapsed_days if elapsed_days > 0 else 0.0

    # Calendar weeks start on Sunday
    week_start = today - datetime.timedelta(days=(today.weekday() + 1) % 7)
    month_start = today + relativedelta.relativedelta(day=1)
    quarter_start = today + relativedelta.relativedelta(
        month=3 * ((today.month - 1) // 3) + 1, day=1
    )

    return Averages(
        elapsed_days=elapsed_days,
        per_day=per_day,
        per_week=per_day * 7,
        per_month=per_day * DAYS_PER_MONTH,
        per_quarter=per_day * DAYS_PER_QUARTER,
        week_per_day=_period_average(days, week_start, today),
        month_per_day=_period_average(days, month_start, today),
        quarter_per_day=_period_average(days, quarter_start, today),
    )


def summarize(data, today):
    """Collects every figure shown in the stats grid"""
    days = sorted(flatten_days(data.calendar), key=lambda d: d.date)
    today_count = next(
        (d.contribution_count for d in days if d.date == today), 0
    )
    return DashboardStats(
        today_count=today_count,
        last_7_days=sum(d.contribution_count for d in days[-7:]),
        best_day=best_day(days),
        current_streak=calculate_streak(days, today),
        longest_streak=calculate_longest_streak(days),
        averages=compute_averages(days, data.calendar.total_contributions, today),
    )


# Rendering helpers


def terminal_width(config):
    """Current terminal width, 80 when unknown, capped at config.max_width"""
    columns = shutil.get_terminal_size((DEFAULT_WIDTH, 24)).columns
    if columns <= 0:
        columns = DEFAULT_WIDTH
    return min(columns, config.max_width)


def format_number(n):
    """Format an integer with thousands separators"""
    return f"{n:,}"


def format_date(date):
    """Format a date as '7 Mar'"""
    return f"{date.day} {date.strftime('%b')}"


def rgb(colour):
    r, g, b = colour
    return f"rgb({r},{g},{b})"


def rule(width):
    return Text("  " + "─" * (width - 2), style="dim")


# Sections


def render_header(login, total_contributions, width):
    title = "  GitHub Contributions"
    gap = max(1, width - len(title) - len(login))

    return [
        Text.assemble((title, "bold white"), " " * gap, (login, "dim")),
        rule(width),
        Text(
            f"  {format_number(total_contributions)} contributions in the last year",
            style="white",
        ),
        Text(),
    ]


def _grid_rows(left_col, right_col, width):
    gap = max(2, width - COL1_WIDTH - 6 - COL2_WIDTH - 10 - 2)
    rows = []
    for (left_label, left_value), (right_label, right_value) in zip(
        left_col, right_col
    ):
        row = Text.assemble((left_label, "dim"), (left_value, "white"))
        if right_label:
            row.append(" " * gap)
            row.append(right_label, style="dim")
            row.append(right_value, style="white")
        rows.append(row)
    return rows


def render_stats(stats, width):
    """Two-column grid of counts, streaks and averages"""
    if stats.best_day is None:
        best = "-".rjust(16)
    else:
        best = (
            f"{stats.best_day.contribution_count} "
            f"({format_date(stats.best_day.date)})"
        ).rjust(16)

    left_col = [
        ("  Today".ljust(COL1_WIDTH), str(stats.today_count).rjust(6)),
        ("  Last 7 days".ljust(COL1_WIDTH), str(stats.last_7_days).rjust(6)),
        ("  Best day".ljust(COL1_WIDTH), best),
    ]
    right_col = [
        ("Current streak".ljust(COL2_WIDTH), f"{stats.current_streak} days".rjust(10)),
        ("Longest streak".ljust(COL2_WIDTH), f"{stats.longest_streak} days".rjust(10)),
        ("", ""),
    ]

    avg = stats.averages
    avg_left = [
        ("  Avg / week".ljust(COL1_WIDTH), f"{avg.per_week:.1f}".rjust(6)),
        ("  Avg / month".ljust(COL1_WIDTH), f"{avg.per_month:.1f}".rjust(6)),
        ("  Avg / quarter".ljust(COL1_WIDTH), f"{avg.per_quarter:.1f}".rjust(6)),
    ]
    avg_right = [
        ("This week / day".ljust(COL2_WIDTH), f"{avg.week_per_day:.1f}".rjust(10)),
        ("This month / day".ljust(COL2_WIDTH), f"{avg.month_per_day:.1f}".rjust(10)),
        ("This quarter / day".ljust(COL2_WIDTH), f"{avg.quarter_per_day:.1f}".rjust(10)),
    ]

    lines = _grid_rows(left_col, right_col, width)
    lines.append(Text())
    lines.extend(_grid_rows(avg_left, avg_right, width))
    lines.append(rule(width))
    return lines


def render_bar_chart(days, width):
    """Horizontal bars for the last 14 days"""
    lines = [Text("  Last 14 Days", style="bold white"), Text()]

    last_14 = sorted(days, key=lambda d: d.date)[-14:]
    max_count = max([d.contribution_count for d in last_14] + [1])
    label_width = 8  # "30 Jan  "
    count_width = 6
    bar_max_width = max(20, width - label_width - count_width - 4)

    for day in last_14:
        bar_len = round(day.contribution_count / max_count * bar_max_width)
        lines.append(
            Text.assemble(
                (f"  {format_date(day.date).ljust(label_width)}", "dim"),
                ("█" * bar_len, rgb(BAR_COLOUR)),
                (f" {str(day.contribution_count).rjust(4)}", "white"),
            )
        )

    lines.append(rule(width))
    return lines


def heatmap_layout(week_count, width):
    """
    Chooses cell width, number of visible weeks and visible day rows so the
    grid fits in the given width.
    """
    available = width - INDENT - DAY_LABEL_WIDTH
    roomy = available >= week_count * 2
    cell_width = 2 if roomy else 1
    visible_weeks = min(week_count, max(0, available // cell_width))
    day_rows = ALL_DAY_ROWS if roomy else COMPACT_DAY_ROWS
    return cell_width, visible_weeks, day_rows


def month_labels(weeks, cell_width):
    """Month names placed above the first column of each month"""
    positions = []
    last_month = None
    for index, week in enumerate(weeks):
        if not week.days:
            continue
        first_day = week.days[0].date
        if first_day.month != last_month:
            positions.append((index * cell_width, first_day.strftime("%b")))
            last_month = first_day.month

    chars = [" "] * (len(weeks) * cell_width)
    last_end = -1
    for col, label in positions:
        # Skip labels that would touch the previous one or run off the grid
        if col > last_end and col + len(label) <= len(chars):
            chars[col : col + len(label)] = label
            last_end = col + len(label)
    return "".join(chars)


def render_heatmap(calendar, width):
    """Month-labelled contribution grid with a legend"""
    lines = [Text("  Contribution Graph", style="bold white"), Text()]

    weeks = calendar.weeks
    quartiles = compute_quartiles(flatten_days(calendar))
    cell_width, visible_weeks, day_rows = heatmap_layout(len(weeks), width)
    display_weeks = weeks[len(weeks) - visible_weeks :]

    label_indent = " " * (INDENT + DAY_LABEL_WIDTH)
    lines.append(Text(label_indent + month_labels(display_weeks, cell_width), style="dim"))

    # Index each week by weekday so a partial week keeps its days in the right rows
    by_weekday = [
        {(day.date.weekday() + 1) % 7: day for day in week.days}
        for week in display_weeks
    ]
    for day_idx in day_rows:
        row = Text(" " * INDENT + DAY_LABELS[day_idx].ljust(DAY_LABEL_WIDTH))
        for week_days in by_weekday:
            day = week_days.get(day_idx)
            if day is None:
                row.append(" " * cell_width)
            else:
                level = heatmap_level(day.contribution_count, quartiles)
                row.append(" " * cell_width, style="on " + rgb(HEATMAP_COLOURS[level]))
        lines.append(row)

    lines.append(Text())

    legend = Text.assemble(label_indent, ("Less ", "dim"))
    for i, colour in enumerate(HEATMAP_COLOURS):
        legend.append("  ", style="on " + rgb(colour))
        if i < len(HEATMAP_COLOURS) - 1:
            legend.append(" ")
    legend.append(" More", style="dim")
    lines.append(legend)
    return lines


def render_dashboard(data, width, today):
    """Every dashboard line in print order"""
    days = flatten_days(data.calendar)
    stats = summarize(data, today)

    lines = [Text()]
    lines.extend(render_header(data.login, data.calendar.total_contributions, width))
    lines.extend(render_stats(stats, width))
    lines.append(Text())
    lines.extend(render_bar_chart(days, width))
    lines.append(Text())
    lines.extend(render_heatmap(data.calendar, width))
    lines.append(Text())
    return lines


def main():
    # Logging first so warnings about bad overrides reach the stderr handler
    setup_logging(os.environ.get("GH_DASHBOARD_LOG_LEVEL") or Config.log_level)
    config = Config.from_env()

    try:
        data = fetch_contributions(config)
    except GitHubCLIError as exc:
        logger.debug("Fetch failed: %s", exc)
        err_console = Console(stderr=True, soft_wrap=True, highlight=False)
        err_console.print(FETCH_ERROR_MESSAGE, style="red", markup=False)
        err_console.print(FETCH_HINT_MESSAGE, style="dim", markup=False)
        sys.exit(1)

    console = Console(soft_wrap=True, highlight=False)
    for line in render_dashboard(data, terminal_width(config), datetime.date.today()):
        console.print(line)


if __name__ == "__main__":
    main()
