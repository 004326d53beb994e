"""Command line interface for the wowflutter package."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .codec import (
    decode_telemetry,
    display_rpm_to_rad_per_sec,
    encode_current_pi,
    encode_target,
    encode_velocity_pid,
)
from .config import MeterConfig, load_config
from .demo import run_demo
from .host import MeterHost, load_capture
from .plotting import render_snapshot
from .reporting import export_results


encode_app = typer.Typer(help="Build command payloads for the device.")


@encode_app.command("target")
def encode_target_cmd(
    display_rpm: float = typer.Argument(..., help="Target speed in display RPM."),
) -> None:
    rad = display_rpm_to_rad_per_sec(display_rpm)
    typer.echo(f"{encode_target(rad).hex()}  ({rad:.6f} rad/s)")


@encode_app.command("vel-pid")
def encode_vel_pid_cmd(
    p: float = typer.Argument(...),
    i: float = typer.Argument(...),
    d: float = typer.Argument(...),
) -> None:
    typer.echo(encode_velocity_pid(p, i, d).hex())


@encode_app.command("cur-pi")
def encode_cur_pi_cmd(
    p: float = typer.Argument(...),
    i: float = typer.Argument(...),
) -> None:
    typer.echo(encode_current_pi(p, i).hex())


app = typer.Typer(context_settings={"help_option_names": ["-h", "--help"]}, add_completion=False)
app.add_typer(encode_app, name="encode")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config_path: Optional[Path], override: Optional[List[str]]) -> MeterConfig:
    try:
        return load_config(config_path, override or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--set") from exc


@app.command()
def replay(
    input_path: Path = typer.Option(..., "--in", help="Capture CSV (t_s, speed[, error, loop_us, target])."),
    report_dir: Path = typer.Option(..., "--report", help="Output directory for reports."),
    target: Optional[float] = typer.Option(None, "--target", help="Target display RPM for the whole capture."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Meter config JSON."),
    override: Optional[List[str]] = typer.Option(
        None, "--set", help="Override config keys, e.g. --set window_seconds=10"
    ),
    plot: bool = typer.Option(True, "--plot/--no-plot", help="Render telemetry.png."),
) -> None:
    """Replay a capture through the meter and write metrics and report."""

    cfg = _load(config_path, override)
    try:
        capture = load_capture(input_path)
    except (FileNotFoundError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--in") from exc
    if target is None and "target" not in capture.columns:
        raise typer.BadParameter("Provide --target or a 'target' column", param_hint="--target")

    result = MeterHost(cfg).replay(capture, target=target)

    figure_path = None
    if plot:
        try:
            figure_path = render_snapshot(result.snapshot, report_dir / "telemetry.png")
        except RuntimeError as exc:
            typer.echo(f"[warning] plotting skipped: {exc}")

    export_results(result, report_dir, figure_path=figure_path, input_path=input_path)
    metrics = result.snapshot.metrics
    if metrics is None:
        typer.echo(f"No metric ({result.snapshot.metric_note or 'stopped'})")
    else:
        typer.echo(
            f"WRMS {metrics.unweighted_rms:.4f} %  2σ {metrics.unweighted_two_sigma:.4f} %  "
            f"weighted {metrics.weighted_rms:.4f} % / {metrics.weighted_two_sigma:.4f} %"
        )
    typer.echo(f"Report written to {report_dir}")


@app.command()
def demo(
    out_dir: Path = typer.Option(Path("demo_output"), "--out", help="Target directory for demo report."),
) -> None:
    """Generate a synthetic capture and replay it."""

    run_demo(out_dir)
    typer.echo(f"Demo capture and report written to {out_dir}")


@app.command()
def decode(payload_hex: str = typer.Argument(..., help="Telemetry payload as hex.")) -> None:
    """Decode one 12-byte telemetry payload."""

    try:
        payload = bytes.fromhex(payload_hex)
    except ValueError as exc:
        raise typer.BadParameter("payload must be hex") from exc
    frame = decode_telemetry(payload, 0.0)
    if frame is None:
        typer.echo(f"Payload too short ({len(payload)} bytes)")
        raise typer.Exit(code=1)
    typer.echo(f"speed={frame.speed:.4f} error={frame.error:.6f} rad/s loop={frame.loop_us} us")


@app.command()
def presets(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Meter config JSON."),
) -> None:
    """List the configured speed presets."""

    cfg = _load(config_path, None)
    for idx, rpm in enumerate(cfg.presets):
        typer.echo(f"{idx}: {rpm:.7g} RPM ({display_rpm_to_rad_per_sec(rpm):.6f} rad/s)")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
