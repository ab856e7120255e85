"""Text formatter for TimeTrack summaries and durations."""

from timetrack.core.models import DailySummary

UNCATEGORIZED_LABEL = "Uncategorized"


class TextFormatter:
    """Formats summary data as human-readable plain text."""

    @staticmethod
    def format_duration(seconds: int) -> str:
        """Format a total as 'Xh YYm' (e.g. '2h 05m'), or 'Ym' under an hour.

        Truncates to whole minutes. Negative values format as '0m'.
        """
        seconds = max(int(seconds), 0)
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        if hours > 0:
            return f"{hours}h {minutes:02d}m"
        return f"{minutes}m"

    @staticmethod
    def format_activity_duration(seconds: int) -> str:
        """Format a single activity: '1h 05m', '3m 07s' or '42s'."""
        seconds = max(int(seconds), 0)
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60
        if hours > 0:
            return f"{hours}h {minutes:02d}m"
        if minutes > 0:
            return f"{minutes}m {secs:02d}s"
        return f"{secs}s"

    @staticmethod
    def format_daily(summary: DailySummary) -> str:
        """Render a daily summary as an aligned project table.

        Returns lines like:
          Project          Time      %
          ───────────────────────────────
          Concepta       2h 15m   75.0
          Uncategorized     45m   25.0
          ───────────────────────────────
          Total          3h 00m  100.0
        """
        header = f"Daily Summary: {summary.date.strftime('%A, %B %d, %Y')}\n"
        if not summary.entries:
            return header + "\n  No activity recorded.\n"

        names = [e.project.name if e.project else UNCATEGORIZED_LABEL for e in summary.entries]
        durations = [TextFormatter.format_duration(e.total_seconds) for e in summary.entries]
        percents = [f"{e.percentage:.1f}" for e in summary.entries]
        total_dur = TextFormatter.format_duration(summary.total_seconds)
        total_pct = "100.0"

        name_width = max(len(n) for n in names + ["Project", "Total"])
        dur_width = max(len(d) for d in durations + [total_dur, "Time"])
        pct_width = max(len(p) for p in percents + [total_pct, "%"])

        table_header = (
            f"  {'Project':<{name_width}}  "
            f"{'Time':>{dur_width}}  "
            f"{'%':>{pct_width}}"
        )
        separator = "  " + "─" * (len(table_header) - 2)
        lines = [table_header, separator]
        for name, dur, pct in zip(names, durations, percents):
            lines.append(f"  {name:<{name_width}}  {dur:>{dur_width}}  {pct:>{pct_width}}")
        lines.append(separator)
        lines.append(f"  {'Total':<{name_width}}  {total_dur:>{dur_width}}  {total_pct:>{pct_width}}")

        return header + "\n" + "\n".join(lines) + "\n"
