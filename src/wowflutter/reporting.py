"""Report writers for replayed captures."""
from __future__ import annotations

from pathlib import Path

from .host import ReplayResult


def export_results(
    result: ReplayResult,
    output_dir: Path,
    *,
    figure_path: Path | None = None,
    input_path: Path | None = None,
) -> None:
    """Persist the metric history and a markdown summary to *output_dir*."""

    output_dir.mkdir(parents=True, exist_ok=True)
    result.history.to_csv(output_dir / "metrics.csv", index=False)
    _write_report_md(result, output_dir, figure_path=figure_path, input_path=input_path)


def _fmt(value: float | None, spec: str) -> str:
    return "n/a" if value is None else format(value, spec)


def _write_report_md(
    result: ReplayResult,
    output_dir: Path,
    *,
    figure_path: Path | None,
    input_path: Path | None,
) -> None:
    snap = result.snapshot
    metrics = snap.metrics
    lines: list[str] = []
    lines.append("# Wow & Flutter Report")
    if input_path is not None:
        lines.append(f"*Capture:* `{input_path}`  ")
    lines.append(f"*Frames:* {result.stats.get('frames', 0)}  ")
    lines.append(f"*Short payloads dropped:* {result.stats.get('short_payloads', 0)}  ")
    lines.append(f"*Non-monotonic intervals:* {result.stats.get('non_monotonic', 0)}  ")
    lines.append(f"*Estimated sample rate:* {_fmt(snap.rate_hz, '.1f')} Hz  ")
    lines.append(f"*Target:* {snap.target:.4f} RPM  ")
    lines.append("")

    lines.append("## Final window")
    if metrics is None:
        note = snap.metric_note or "stopped"
        lines.append(f"No metric available ({note}).")
    else:
        lines.append(f"Samples in window: {metrics.samples}")
        lines.append("")
        lines.append("| Metric | Unweighted | Weighted |")
        lines.append("| --- | ---: | ---: |")
        lines.append(f"| RMS (%) | {metrics.unweighted_rms:.5f} | {metrics.weighted_rms:.5f} |")
        lines.append(
            f"| 2σ (%) | {metrics.unweighted_two_sigma:.5f} | {metrics.weighted_two_sigma:.5f} |"
        )
        if snap.metric_note:
            lines.append("")
            lines.append(f"*Note:* {snap.metric_note}")
    lines.append("")

    if not result.history.empty:
        lines.append("## History")
        lines.append(f"{len(result.history)} metric updates; worst weighted RMS "
                     f"{result.history['weighted_rms'].max():.5f} %.")
        lines.append("")

    if figure_path is not None:
        lines.append(f"![Telemetry plot]({figure_path.name})")
        lines.append("")

    lines.append("### Notes")
    lines.append("- Deviation is `100 * (speed - target) / target`, mean-removed over the window.")
    lines.append("- Weighted values use a 4 Hz bandpass + lowpass approximation of the standard weighting.")

    (output_dir / "report.md").write_text("\n".join(lines), encoding="utf-8")
