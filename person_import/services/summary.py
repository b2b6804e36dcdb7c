from __future__ import annotations

from ..models.run_result import RunSummary

"""SUMMARY line rendering.

Format:
SUMMARY file={name} total={n} processed={n} errors={n} batches={n}
elapsed_sec={x} throughput_rps={n} size_mb={x.x} state={done|failed}
"""


def _format_seconds(value: float) -> str:
    # 整数値は小数点なし、極小値は指数表記を避ける
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip('0').rstrip('.')
    return f"{value:.2f}".rstrip('0').rstrip('.')


def render_summary_line(summary: RunSummary) -> str:
    """Render a single SUMMARY line for ``summary``.

    Examples:
        >>> from person_import.models.run_result import RunState, RunSummary
        >>> s = RunSummary(
        ...     state=RunState.DONE, total_records=10, processed_records=9, errors=1,
        ...     elapsed_seconds=2.0, avg_records_per_second=5, filename="people.csv",
        ...     file_size_bytes=0, total_batches=1,
        ... )
        >>> render_summary_line(s)
        'SUMMARY file=people.csv total=10 processed=9 errors=1 batches=1 elapsed_sec=2 throughput_rps=5 size_mb=0.0 state=done'
    """
    name = summary.filename.replace(" ", "_") or "-"
    return (
        f"SUMMARY file={name} "
        f"total={summary.total_records} "
        f"processed={summary.processed_records} "
        f"errors={summary.errors} "
        f"batches={summary.total_batches} "
        f"elapsed_sec={_format_seconds(summary.elapsed_seconds)} "
        f"throughput_rps={summary.avg_records_per_second} "
        f"size_mb={summary.file_size_mb:.1f} "
        f"state={summary.state.value}"
    )
